"""Persistence for client_config rows in the attribution database."""

from app.db.helpers import DatabaseError, fetch_all, fetch_one
from app.features.attribution.domain import ClientConfig
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ClientConfigRepository:
    """Lookups and inserts for per-client attribution settings."""

    SELECT_COLUMNS = """
        id, client_id, client_name, slug, rev_share_rate,
        attribution_window_days, soft_match_enabled, exclude_personal_domains
    """

    @classmethod
    def _row_to_config(cls, row: dict | None) -> ClientConfig | None:
        if not row:
            return None

        window = row.get("attribution_window_days")
        return ClientConfig(
            id=str(row["id"]),
            client_id=str(row["client_id"]),
            client_name=row["client_name"],
            slug=row["slug"],
            rev_share_rate=float(row.get("rev_share_rate") or 0.10),
            attribution_window_days=int(window) if window is not None else 31,
            soft_match_enabled=row.get("soft_match_enabled") is not False,
            exclude_personal_domains=row.get("exclude_personal_domains") is not False,
        )

    @classmethod
    async def get_client_config_by_client_id(cls, client_id: str) -> ClientConfig | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM client_config WHERE client_id = %s"
        row = await fetch_one(query, (client_id,))
        return cls._row_to_config(row)

    @classmethod
    async def list_client_configs(cls) -> list[ClientConfig]:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM client_config ORDER BY client_name"
        rows = await fetch_all(query)
        return [cls._row_to_config(row) for row in rows]

    @classmethod
    async def create_client_config(
        cls,
        client_id: str,
        client_name: str,
        slug: str,
        rev_share_rate: float = 0.10,
    ) -> ClientConfig:
        """
        Insert a client_config row, or return the existing one for client_id.

        A concurrent sync creating the same client resolves through the
        unique client_id constraint instead of failing.
        """

        query = f"""
            INSERT INTO client_config (client_id, client_name, slug, rev_share_rate)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (client_id) DO UPDATE SET updated_at = client_config.updated_at
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(query, (client_id, client_name, slug, rev_share_rate))
        if not row:
            raise DatabaseError("Failed to create client config", operation="create_client_config")

        logger.info("Client config created", client_id=client_id, slug=slug)
        return cls._row_to_config(row)

    # Columns an operator may change after the client was synced
    SETTINGS_COLUMNS = (
        "rev_share_rate",
        "attribution_window_days",
        "soft_match_enabled",
        "exclude_personal_domains",
    )

    @classmethod
    async def update_settings(cls, client_id: str, changes: dict) -> ClientConfig | None:
        """
        Apply a partial settings update.

        Only keys from SETTINGS_COLUMNS are written; anything else is ignored.
        Returns the updated config, or None when client_id is unknown.
        """
        updates = {key: value for key, value in changes.items() if key in cls.SETTINGS_COLUMNS}
        if not updates:
            return await cls.get_client_config_by_client_id(client_id)

        assignments = ", ".join(f"{column} = %({column})s" for column in updates)
        query = f"""
            UPDATE client_config
            SET {assignments}, updated_at = NOW()
            WHERE client_id = %(client_id)s
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(query, {**updates, "client_id": client_id})
        if row:
            logger.info("Client settings updated", client_id=client_id, fields=sorted(updates))
        return cls._row_to_config(row)
