# src/taskmaster/backend/setup_check.py

"""
Boot-time setup checks.

Two distinct blocking conditions, both rendered as a setup screen instead of a crash:
- ConfigError: backend URL / key missing or still template placeholders,
- SchemaError: the todos table is missing in the backend project.
"""

from __future__ import annotations

import logging

from ..config import ENV_PREFIX
from ..errors import ConfigError, DataError, SchemaError
from .rest_client import RestClient

logger = logging.getLogger(__name__)

SCHEMA_SQL_TEMPLATE = """\
CREATE TABLE IF NOT EXISTS {table} (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id uuid REFERENCES auth.users NOT NULL,
  title text NOT NULL,
  completed boolean DEFAULT false,
  created_at timestamptz DEFAULT now()
);

ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;

CREATE POLICY "Users can view their own todos"
  ON {table} FOR SELECT TO authenticated
  USING (auth.uid() = user_id);

CREATE POLICY "Users can insert their own todos"
  ON {table} FOR INSERT TO authenticated
  WITH CHECK (auth.uid() = user_id);

CREATE POLICY "Users can update their own todos"
  ON {table} FOR UPDATE TO authenticated
  USING (auth.uid() = user_id);

CREATE POLICY "Users can delete their own todos"
  ON {table} FOR DELETE TO authenticated
  USING (auth.uid() = user_id);

ALTER PUBLICATION supabase_realtime ADD TABLE {table};
"""


def schema_sql(table: str = "todos") -> str:
    return SCHEMA_SQL_TEMPLATE.format(table=table)


async def check_schema(rest: RestClient) -> None:
    """
    Raise SchemaError if the tasks table is missing.

    Other failures (network, RLS denying anonymous reads) are logged and ignored:
    they are not a setup problem and will surface on the first real request.
    """
    try:
        await rest.probe()
    except SchemaError:
        raise
    except DataError as e:
        logger.warning("Schema probe inconclusive: %s", e.message)


def render_config_error(err: ConfigError) -> str:
    lines = [
        "Configuration Error",
        "",
        err.message,
        "",
        "Required steps:",
        "  1. Create a .env file in the project root (if not already present)",
        f"  2. Add your project URL: {ENV_PREFIX}_SUPABASE_URL=your-project-url",
        f"  3. Add your anon key: {ENV_PREFIX}_SUPABASE_ANON_KEY=your-anon-key",
        "  4. Restart taskmaster",
    ]
    return "\n".join(lines)


def render_schema_error(err: SchemaError) -> str:
    lines = [
        "Database Setup Required",
        "",
        err.message,
        "",
        "Required steps:",
        "  1. Open your backend dashboard",
        "  2. Navigate to the SQL Editor",
        "  3. Run the following SQL to create the necessary table:",
        "",
        schema_sql(err.relation),
        "  4. Restart taskmaster after creating the table",
    ]
    return "\n".join(lines)
