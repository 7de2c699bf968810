"""
Ingredients (INCI) screen.

The recommendation level is the union 0..5 | "alergen" | "konserwant" and is
written to whichever column the deployment's schema uses (see FeatureFlags).
"""

from typing import Callable, Optional

from src.backend.supabase_client import AdminContext
from src.controllers.base import EntityController, EntitySchema
from src.errors import ValidationError
from src.models.catalog import Ingredient, parse_functions, parse_recommendation


def ingredient_schema(context: AdminContext) -> EntitySchema:
    column = context.features.recommendation_column
    return EntitySchema(
        table="ingredients",
        model=Ingredient,
        label="ingredient",
        columns=f"id,inci_name,functions,{column},is_new",
        name_field="inci_name",
        search_fields=("inci_name", "functions", "recommendation"),
        editable_fields=("inci_name", "functions", "recommendation"),
        unique_name=True,
        list_route=context.routes.ingredients,
    )


class IngredientController(EntityController):
    """Ingredient list/form."""

    def __init__(
        self,
        context: AdminContext,
        navigate: Optional[Callable[[str], None]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        super().__init__(context, ingredient_schema(context), navigate, confirm)
        self.recommendation_column = context.features.recommendation_column
        self.recommendation_as_text = context.features.recommendation_as_text

    def _stored_recommendation(self, level):
        if level is None:
            return None
        return str(level) if self.recommendation_as_text else level

    def prepare(self, values: dict, partial: bool = False) -> dict:
        payload = super().prepare(values, partial)

        if "functions" in payload:
            try:
                payload["functions"] = parse_functions(payload["functions"])
            except ValueError as e:
                raise ValidationError(str(e)) from e

        if "recommendation" in payload:
            try:
                level = parse_recommendation(payload.pop("recommendation"))
            except ValueError as e:
                raise ValidationError(str(e)) from e
            if isinstance(level, str) and not self.recommendation_as_text:
                raise ValidationError(
                    f"'{level}' needs a text recommendation column; "
                    "this catalog stores levels 0-5 only."
                )
            payload[self.recommendation_column] = self._stored_recommendation(level)
        return payload

    def to_columns(self, row: Ingredient) -> dict:
        return {
            "id": row.id,
            "inci_name": row.inci_name,
            "functions": row.functions,
            self.recommendation_column: self._stored_recommendation(row.recommendation),
            "is_new": row.is_new,
        }
