from app.db.helpers import fetch_all


class PersonalDomainRepository:
    """Reads the personal_email_domain reference table."""

    @classmethod
    async def list_personal_email_domains(cls) -> list[str]:
        rows = await fetch_all("SELECT domain FROM personal_email_domain ORDER BY domain")
        return [row["domain"] for row in rows]
