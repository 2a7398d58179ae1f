"""Form schema model and loading."""

from smartform.schema.types import (
    DefaultWhen,
    DynamicSource,
    FieldSpec,
    FieldType,
    FormSchema,
    Option,
    OptionsConfig,
    OptionsDependency,
    OptionsType,
    ValidationRule,
)

__all__ = [
    "DefaultWhen",
    "DynamicSource",
    "FieldSpec",
    "FieldType",
    "FormSchema",
    "Option",
    "OptionsConfig",
    "OptionsDependency",
    "OptionsType",
    "ValidationRule",
]
