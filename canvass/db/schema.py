"""Schema creation and additive migrations, run on every start.

Tables are created if absent. Columns added after the first release are
patched in with a probe: select the column, and if that fails, ALTER the
table to add it. The probe cannot tell a missing column from a missing or
broken table; in that case the ALTER fails too and the error propagates,
which stops startup.
"""
import logging
from dataclasses import dataclass

from canvass.db.base import StatementAdapter

logger = logging.getLogger(__name__)

TABLES = ("users", "questionnaires", "questions", "options", "responses", "answers")

SQLITE_DDL = """
CREATE TABLE IF NOT EXISTS users (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  email TEXT UNIQUE,
  password_hash TEXT NOT NULL,
  alias TEXT,
  is_admin INTEGER DEFAULT 0,
  age_verified INTEGER DEFAULT 0,
  created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS questionnaires (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  title TEXT NOT NULL,
  description TEXT,
  image_url TEXT,
  language TEXT DEFAULT 'zh',
  created_by INTEGER NOT NULL REFERENCES users(id),
  created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS questions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  questionnaire_id INTEGER NOT NULL REFERENCES questionnaires(id) ON DELETE CASCADE,
  text TEXT NOT NULL,
  type TEXT NOT NULL CHECK(type IN ('text', 'single_choice', 'multiple_choice')),
  page_number INTEGER NOT NULL DEFAULT 1 CHECK(page_number >= 1),
  order_num INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS options (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
  text TEXT NOT NULL,
  order_num INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS responses (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
  questionnaire_id INTEGER NOT NULL REFERENCES questionnaires(id) ON DELETE CASCADE,
  guest_alias TEXT,
  share_token TEXT,
  completed_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS answers (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  response_id INTEGER NOT NULL REFERENCES responses(id) ON DELETE CASCADE,
  question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
  answer_text TEXT
)
"""

POSTGRES_DDL = """
CREATE TABLE IF NOT EXISTS users (
  id SERIAL PRIMARY KEY,
  email TEXT UNIQUE,
  password_hash TEXT NOT NULL,
  alias TEXT,
  is_admin INTEGER DEFAULT 0,
  age_verified INTEGER DEFAULT 0,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS questionnaires (
  id SERIAL PRIMARY KEY,
  title TEXT NOT NULL,
  description TEXT,
  image_url TEXT,
  language TEXT DEFAULT 'zh',
  created_by INTEGER NOT NULL REFERENCES users(id),
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS questions (
  id SERIAL PRIMARY KEY,
  questionnaire_id INTEGER NOT NULL REFERENCES questionnaires(id) ON DELETE CASCADE,
  text TEXT NOT NULL,
  type TEXT NOT NULL CHECK(type IN ('text', 'single_choice', 'multiple_choice')),
  page_number INTEGER NOT NULL DEFAULT 1 CHECK(page_number >= 1),
  order_num INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS options (
  id SERIAL PRIMARY KEY,
  question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
  text TEXT NOT NULL,
  order_num INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS responses (
  id SERIAL PRIMARY KEY,
  user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
  questionnaire_id INTEGER NOT NULL REFERENCES questionnaires(id) ON DELETE CASCADE,
  guest_alias TEXT,
  share_token TEXT,
  completed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS answers (
  id SERIAL PRIMARY KEY,
  response_id INTEGER NOT NULL REFERENCES responses(id) ON DELETE CASCADE,
  question_id INTEGER NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
  answer_text TEXT
)
"""

# Same text on both engines
INDEXES = """
CREATE UNIQUE INDEX IF NOT EXISTS uq_users_alias ON users(alias);
CREATE UNIQUE INDEX IF NOT EXISTS uq_responses_share_token ON responses(share_token);
CREATE UNIQUE INDEX IF NOT EXISTS uq_responses_user_id_questionnaire_id ON responses(user_id, questionnaire_id);
CREATE INDEX IF NOT EXISTS ix_questions_questionnaire_id ON questions(questionnaire_id);
CREATE INDEX IF NOT EXISTS ix_options_question_id ON options(question_id);
CREATE INDEX IF NOT EXISTS ix_answers_response_id ON answers(response_id)
"""


@dataclass(frozen=True)
class AddedColumn:
    table: str
    column: str
    definition: str


ADDITIVE_COLUMNS = (
    AddedColumn("questionnaires", "image_url", "TEXT"),
    AddedColumn("questionnaires", "language", "TEXT DEFAULT 'zh'"),
    AddedColumn("users", "alias", "TEXT"),
    AddedColumn("users", "age_verified", "INTEGER DEFAULT 0"),
    AddedColumn("responses", "guest_alias", "TEXT"),
    AddedColumn("responses", "share_token", "TEXT"),
)


def ddl_for(dialect: str) -> str:
    if dialect == "postgresql":
        return POSTGRES_DDL
    return SQLITE_DDL


async def column_exists(db: StatementAdapter, table: str, column: str) -> bool:
    try:
        await db.prepare(f"SELECT {column} FROM {table} LIMIT 1").get()
    except Exception:
        return False
    return True


async def apply_additive_columns(db: StatementAdapter) -> list[str]:
    patched = []
    for col in ADDITIVE_COLUMNS:
        if await column_exists(db, col.table, col.column):
            continue
        await db.exec(f"ALTER TABLE {col.table} ADD COLUMN {col.column} {col.definition}")
        patched.append(f"{col.table}.{col.column}")
        logger.info("Schema migration: added column %s.%s", col.table, col.column)
    return patched


async def initialize_schema(db: StatementAdapter) -> list[str]:
    """Create missing tables, patch missing columns, ensure indexes.

    Returns the columns that had to be added (empty once the schema is current).
    """
    await db.exec(ddl_for(db.dialect))
    patched = await apply_additive_columns(db)
    await db.exec(INDEXES)
    logger.info("Schema ready (%s, %d column(s) patched)", db.dialect, len(patched))
    return patched
