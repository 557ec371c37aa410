"""Pluggable request and response policies.

- base.py: IntentValidator and ResponseValidator protocols
- defaults.py: the implementations used when none is configured
"""

from idempotency_guard.validators.base import IntentValidator, ResponseValidator
from idempotency_guard.validators.defaults import (
    DefaultIntentValidator,
    MethodIntentValidator,
    SuccessfulResponseValidator,
)

__all__ = [
    "IntentValidator",
    "ResponseValidator",
    "DefaultIntentValidator",
    "MethodIntentValidator",
    "SuccessfulResponseValidator",
]
