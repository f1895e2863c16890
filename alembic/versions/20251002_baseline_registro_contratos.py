"""baseline: contratos, aditivos, apostilamentos, fiscais, documentos, usuários/papéis
Compatível com SQLite e Postgres.
Criação idempotente (só cria a tabela se não existir).
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers
revision: str = "20251002_baseline"
down_revision = None
branch_labels = None
depends_on = None

MODALIDADES = ("Pregão", "Dispensa", "Inexigibilidade", "Concorrência", "Tomada de Preços", "Credenciamento", "Adesão")
STATUS = ("Vigente", "Rescindido", "Encerrado", "Prorrogado")
TIPOS_ADITIVO = ("Aditivo de Valor", "Aditivo de Prazo", "Aditivo de Valor e Prazo")
TIPOS_APOSTILAMENTO = (
    "Prorrogação de Prazo de Execução",
    "Reajuste por Índice",
    "Repactuação",
    "Alteração de Dotação Orçamentária",
)
TIPOS_DOCUMENTO = (
    "Contrato",
    "Extrato de Publicação do Contrato",
    "Termo Aditivo",
    "Extrato de Publicação do Aditivo",
    "Apostilamento",
    "Portaria",
)


def _in(col: str, valores) -> str:
    return f"{col} in (" + ",".join("'" + v + "'" for v in valores) + ")"


def _fk_contrato():
    return sa.Column(
        "contract_id", sa.Integer(), sa.ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )


def upgrade() -> None:
    bind = op.get_bind()
    existentes = set(sa.inspect(bind).get_table_names())

    if "contracts" not in existentes:
        op.create_table(
            "contracts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("contract_number", sa.String(120), nullable=False, unique=True),
            sa.Column("gms_number", sa.String(120)),
            sa.Column("modality", sa.String(40), nullable=False),
            sa.Column("object", sa.Text(), nullable=False),
            sa.Column("contracted_company", sa.String(255), nullable=False),
            sa.Column("contract_value", sa.Float(), nullable=False, server_default="0"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="Vigente"),
            sa.Column("process_number", sa.String(120), nullable=False),
            sa.Column("has_extension_clause", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("manager_name", sa.String(255)),
            sa.Column("manager_email", sa.String(255)),
            sa.Column("manager_nomination", sa.String(255)),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint(_in("status", STATUS), name="ck_contracts_status"),
            sa.CheckConstraint(_in("modality", MODALIDADES), name="ck_contracts_modality"),
            sa.CheckConstraint("contract_value >= 0", name="ck_contracts_value"),
        )
        op.create_index("ix_contracts_status_end_date", "contracts", ["status", "end_date"])
        op.create_index("ix_contracts_created_at", "contracts", ["created_at"])

    if "contract_amendments" not in existentes:
        op.create_table(
            "contract_amendments",
            sa.Column("id", sa.Integer(), primary_key=True),
            _fk_contrato(),
            sa.Column("amendment_type", sa.String(40), nullable=False),
            sa.Column("new_value", sa.Float()),
            sa.Column("new_end_date", sa.Date()),
            sa.Column("process_number", sa.String(120), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint(_in("amendment_type", TIPOS_ADITIVO), name="ck_amendments_type"),
        )
        op.create_index("ix_amendments_contract_created", "contract_amendments", ["contract_id", "created_at"])

    if "contract_endorsements" not in existentes:
        op.create_table(
            "contract_endorsements",
            sa.Column("id", sa.Integer(), primary_key=True),
            _fk_contrato(),
            sa.Column("endorsement_type", sa.String(60), nullable=False),
            sa.Column("new_value", sa.Float()),
            sa.Column("new_execution_date", sa.Date()),
            sa.Column("adjustment_index", sa.String(60)),
            sa.Column("process_number", sa.String(120), nullable=False),
            sa.Column("description", sa.Text()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint(_in("endorsement_type", TIPOS_APOSTILAMENTO), name="ck_endorsements_type"),
        )
        op.create_index("ix_endorsements_contract_created", "contract_endorsements", ["contract_id", "created_at"])

    if "contract_supervisors" not in existentes:
        op.create_table(
            "contract_supervisors",
            sa.Column("id", sa.Integer(), primary_key=True),
            _fk_contrato(),
            sa.Column("supervisor_name", sa.String(255), nullable=False),
            sa.Column("supervisor_email", sa.String(255)),
            sa.Column("supervisor_nomination", sa.String(255)),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_supervisors_contract_id", "contract_supervisors", ["contract_id"])

    if "contract_documents" not in existentes:
        op.create_table(
            "contract_documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            _fk_contrato(),
            sa.Column("document_type", sa.String(60), nullable=False),
            sa.Column("file_name", sa.String(255), nullable=False),
            sa.Column("file_path", sa.String(512), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("document_number", sa.String(16)),
            sa.Column("uploaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("uploaded_by", sa.Integer()),
            sa.CheckConstraint(_in("document_type", TIPOS_DOCUMENTO), name="ck_documents_type"),
        )
        op.create_index("ix_documents_contract_type", "contract_documents", ["contract_id", "document_type"])

    if "users" not in existentes:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(120), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("email", sa.String(255)),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "user_roles" not in existentes:
        op.create_table(
            "user_roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(20), nullable=False),
            sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
            sa.CheckConstraint("role in ('admin','user')", name="ck_user_roles_role"),
        )


def downgrade() -> None:
    for t in (
        "user_roles", "users", "contract_documents", "contract_supervisors",
        "contract_endorsements", "contract_amendments", "contracts",
    ):
        op.drop_table(t)
