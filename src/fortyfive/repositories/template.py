"""Template repository.

Provides read access to the template catalog plus inserts for seeding.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fortyfive.models.template import Template


class TemplateRepository:
    """Repository for Template entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, template_id: int) -> Template | None:
        """Retrieve template by ID (active or not)."""
        result = await self.session.execute(
            select(Template).where(Template.id == template_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Template | None:
        result = await self.session.execute(select(Template).where(Template.name == name))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def list_active(self) -> list[Template]:
        """Retrieve active templates ordered by ID."""
        result = await self.session.execute(
            select(Template)
            .where(Template.is_active == True)  # type: ignore[arg-type]  # noqa: E712
            .order_by(Template.id.asc())  # type: ignore[union-attr]
        )
        return list(result.scalars().all())

    async def add(self, template: Template) -> Template:
        self.session.add(template)
        await self.session.flush()
        return template
