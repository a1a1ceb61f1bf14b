"""Per-category validation of item attributes.

Each category declares the attributes its items carry. The declaration is
turned into a Pydantic model at request time, so item attributes are
checked with the same machinery as every request body.
"""

from typing import Any, Literal, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict, ValidationError, create_model
from services.inventory_service.models import AttributeType, Category


def build_attribute_model(category: Category) -> type[BaseModel]:
    """Pydantic model for the ``attributes`` of items in ``category``.

    Values are strings, restricted to the declared options for select
    attributes. Undeclared keys are rejected. A category that declares no
    attributes accepts any object.
    """
    definitions = category.available_attributes or []
    if not definitions:
        return create_model(
            "CategoryAttributes", __config__=ConfigDict(extra="allow")
        )

    fields: dict[str, Any] = {}
    for definition in definitions:
        if definition["type"] == AttributeType.SELECT.value:
            annotation = Literal[tuple(definition["options"])]
        else:
            annotation = str
        if definition.get("required"):
            fields[definition["name"]] = (annotation, ...)
        else:
            fields[definition["name"]] = (Optional[annotation], None)

    return create_model(
        "CategoryAttributes", __config__=ConfigDict(extra="forbid"), **fields
    )


def validate_item_attributes(category: Category, attributes: dict) -> dict:
    model = build_attribute_model(category)
    try:
        validated = model.model_validate(attributes)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'attributes'}: {err['msg']}"
            for err in e.errors()
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Item attributes do not match category '{category.name}': {problems}",
        )
    return validated.model_dump(exclude_unset=True)
