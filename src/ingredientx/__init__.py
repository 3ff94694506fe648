"""IngredientX: offline ingredient recognition with recipe suggestions."""
