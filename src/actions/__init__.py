"""Infrastructure tool actions."""

from actions.terraform import (
    TerraformApplyAction,
    TerraformDestroyAction,
    TerraformInitAction,
)

__all__ = [
    'TerraformApplyAction',
    'TerraformDestroyAction',
    'TerraformInitAction',
]
