"""Style template catalog endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fortyfive.api.dependencies import get_uow_factory
from fortyfive.models.template import Template
from fortyfive.services.exceptions import TemplateNotFound

router = APIRouter(prefix="/api/v1/templates", tags=["templates"])


class TemplateResponse(BaseModel):
    """Public view of a style template."""

    id: int
    name: str
    description: str | None = None
    preview_image_url: str | None = None
    credit_cost: int = Field(..., description="Credits debited per generation")


def _to_response(template: Template) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,  # type: ignore[arg-type]
        name=template.name,
        description=template.description,
        preview_image_url=template.preview_image_url,
        credit_cost=template.credit_cost,
    )


@router.get("", response_model=list[TemplateResponse])
async def list_templates(uow_factory=Depends(get_uow_factory)) -> list[TemplateResponse]:
    """List active templates in catalog order."""
    async with await uow_factory() as uow:
        templates = await uow.templates.list_active()
    return [_to_response(t) for t in templates]


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(template_id: int, uow_factory=Depends(get_uow_factory)) -> TemplateResponse:
    """Get one active template.

    Raises:
        404: Unknown or inactive template
    """
    async with await uow_factory() as uow:
        template = await uow.templates.get_by_id(template_id)
    if template is None or not template.is_active:
        raise TemplateNotFound(template_id)
    return _to_response(template)
