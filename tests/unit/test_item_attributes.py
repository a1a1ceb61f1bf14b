"""Unit tests for per-category item attribute validation.

Categories are plain model instances; nothing touches the database.
"""

import pytest
from fastapi import HTTPException
from services.inventory_service.models import Category
from services.inventory_service.schemas import AttributeDefinition, CategoryCreate
from services.inventory_service.services.attributes import (
    build_attribute_model,
    validate_item_attributes,
)


def _masks() -> Category:
    return Category(
        name="Masks",
        available_attributes=[
            {"name": "size", "type": "select", "label": "Size",
             "required": True, "options": ["S", "M", "L"]},
            {"name": "brand", "type": "text", "label": "Brand", "required": False},
        ],
    )


@pytest.mark.unit
def test_valid_attributes_are_returned_without_unset_optionals():
    assert validate_item_attributes(_masks(), {"size": "M"}) == {"size": "M"}


@pytest.mark.unit
def test_optional_text_attribute_is_kept():
    result = validate_item_attributes(_masks(), {"size": "L", "brand": "PBT"})
    assert result == {"size": "L", "brand": "PBT"}


@pytest.mark.unit
def test_missing_required_attribute_is_rejected():
    with pytest.raises(HTTPException) as exc:
        validate_item_attributes(_masks(), {"brand": "PBT"})
    assert exc.value.status_code == 422
    assert "size" in exc.value.detail


@pytest.mark.unit
def test_select_value_outside_options_is_rejected():
    with pytest.raises(HTTPException) as exc:
        validate_item_attributes(_masks(), {"size": "XXL"})
    assert exc.value.status_code == 422
    assert "Masks" in exc.value.detail


@pytest.mark.unit
def test_undeclared_attribute_is_rejected():
    with pytest.raises(HTTPException):
        validate_item_attributes(_masks(), {"size": "S", "colour": "black"})


@pytest.mark.unit
def test_category_without_attributes_accepts_anything():
    category = Category(name="Misc", available_attributes=[])
    model = build_attribute_model(category)
    assert model.model_validate({"anything": "goes"}).model_dump() == {"anything": "goes"}


@pytest.mark.unit
def test_select_definition_requires_options():
    with pytest.raises(ValueError):
        AttributeDefinition(name="size", type="select", label="Size")


@pytest.mark.unit
def test_attribute_names_must_be_unique():
    with pytest.raises(ValueError):
        CategoryCreate(
            name="Gloves",
            available_attributes=[
                {"name": "size", "type": "text", "label": "Size"},
                {"name": "size", "type": "text", "label": "Size again"},
            ],
        )


@pytest.mark.unit
def test_attribute_names_must_be_snake_case():
    with pytest.raises(ValueError):
        AttributeDefinition(name="Size", type="text", label="Size")
