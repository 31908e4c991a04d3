"""create document store, queue ledger, registry and search store tables

Revision ID: 3f1a9c2e7b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all indexing tables."""
    op.create_table('SourceDocuments',
    sa.Column('mongo_id', sa.String(length=32), nullable=False),
    sa.Column('db_name', sa.String(length=255), nullable=False),
    sa.Column('coll_name', sa.String(length=255), nullable=False),
    sa.Column('doc_id', sa.String(length=255), nullable=False),
    sa.Column('content', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('mongo_id'),
    sa.UniqueConstraint('db_name', 'coll_name', 'doc_id', name='uq_source_documents_doc')
    )

    op.create_table('IndexQueue',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('db_name', sa.String(length=255), nullable=False),
    sa.Column('collection', sa.String(length=255), nullable=False),
    sa.Column('doc_id', sa.String(length=255), nullable=False),
    sa.Column('mongo_id', sa.String(length=32), nullable=True),
    sa.Column('update_version', sa.BigInteger(), nullable=False),
    sa.Column('index_version', sa.BigInteger(), nullable=False),
    sa.Column('status', sa.Integer(), nullable=False),
    sa.Column('create_at', sa.BigInteger(), nullable=False),
    sa.Column('create_at_time_zone', sa.Integer(), nullable=False),
    sa.Column('update_at', sa.BigInteger(), nullable=False),
    sa.Column('update_at_time_zone', sa.Integer(), nullable=False),
    sa.Column('is_deleted', sa.Boolean(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('db_name', 'collection', 'doc_id', name='uq_index_queue_doc')
    )
    op.create_index('status_update_version_idx', 'IndexQueue', ['status', 'update_version'], unique=False)

    op.create_table('IndexDefinitions',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('search_index', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )

    op.create_table('IndexSources',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('index_id', sa.Integer(), nullable=False),
    sa.Column('db_name', sa.String(length=255), nullable=False),
    sa.Column('coll_name', sa.String(length=255), nullable=False),
    sa.ForeignKeyConstraint(['index_id'], ['IndexDefinitions.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('index_id', 'db_name', 'coll_name', name='uq_index_sources_source')
    )
    op.create_index(op.f('ix_IndexSources_index_id'), 'IndexSources', ['index_id'], unique=False)

    op.create_table('SearchIndexes',
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('name')
    )

    op.create_table('SearchDocuments',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('index_name', sa.String(length=255), nullable=False),
    sa.Column('doc_id', sa.String(length=255), nullable=False),
    sa.Column('seq_no', sa.BigInteger(), nullable=False),
    sa.Column('update_version', sa.BigInteger(), nullable=False),
    sa.Column('update_at', sa.BigInteger(), nullable=True),
    sa.Column('update_at_time_zone', sa.Integer(), nullable=True),
    sa.Column('source_db', sa.String(length=255), nullable=False),
    sa.Column('source_coll', sa.String(length=255), nullable=False),
    sa.Column('flat', sa.JSON(), nullable=False),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('index_name', 'source_db', 'source_coll', 'doc_id', name='uq_search_documents_doc')
    )
    op.create_index('ix_search_documents_source', 'SearchDocuments', ['index_name', 'source_db', 'source_coll'], unique=False)

    op.create_table('SearchFields',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('index_name', sa.String(length=255), nullable=False),
    sa.Column('doc_id', sa.String(length=255), nullable=False),
    sa.Column('source_db', sa.String(length=255), nullable=False),
    sa.Column('source_coll', sa.String(length=255), nullable=False),
    sa.Column('position', sa.Integer(), nullable=False),
    sa.Column('path', sa.Text(), nullable=False),
    sa.Column('value', sa.Text(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_search_fields_doc', 'SearchFields', ['index_name', 'source_db', 'source_coll', 'doc_id'], unique=False)


def downgrade() -> None:
    """Drop all indexing tables."""
    op.drop_index('ix_search_fields_doc', table_name='SearchFields')
    op.drop_table('SearchFields')
    op.drop_index('ix_search_documents_source', table_name='SearchDocuments')
    op.drop_table('SearchDocuments')
    op.drop_table('SearchIndexes')
    op.drop_index(op.f('ix_IndexSources_index_id'), table_name='IndexSources')
    op.drop_table('IndexSources')
    op.drop_table('IndexDefinitions')
    op.drop_index('status_update_version_idx', table_name='IndexQueue')
    op.drop_table('IndexQueue')
    op.drop_table('SourceDocuments')
