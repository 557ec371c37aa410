"""Configuration module for idempotency handling.

This module provides the IdempotencyConfig class for configuring the
idempotency service: which header carries the key, which collaborators make
the pluggable decisions, and how cache hits are handed back to the host.

Example:
    Basic usage with defaults:

        >>> config = IdempotencyConfig()
        >>> config.idempotency_key_header
        'idempotency-key'

    Custom configuration:

        >>> config = IdempotencyConfig(
        ...     idempotency_key_header="X-Idempotency-Key",
        ...     intent_validator=MethodIntentValidator(["POST"]),
        ...     data_adapter=InMemoryDataAdapter(ttl_seconds=3600),
        ...     continue_on_hit=False,
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_IDEMPOTENCY_KEY_HEADER'] = 'x-request-key'
        >>> config = IdempotencyConfig.from_env()
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

from idempotency_guard.storage.base import DataAdapter
from idempotency_guard.validators.base import IntentValidator, ResponseValidator

DEFAULT_IDEMPOTENCY_KEY_HEADER = "idempotency-key"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class IdempotencyConfig(BaseModel):
    """Configuration for the idempotency service.

    Attributes:
        idempotency_key_header: Name of the request header carrying the key.
            Matched case-insensitively; normalized to lowercase.
            Default is "idempotency-key".
        intent_validator: Decides whether a keyed request is guarded.
            None means DefaultIntentValidator (guard every keyed request).
        data_adapter: Resource store. None means a private InMemoryDataAdapter.
        response_validator: Decides whether a captured response is persisted.
            None means SuccessfulResponseValidator (2xx only).
        continue_on_hit: Whether the continuation is still invoked after a
            cached response has been restored onto the outgoing response.
            Default is True.

    Note:
        This class is immutable (frozen=True) to prevent accidental modification
        after initialization. Create a new instance if you need different settings.
    """

    idempotency_key_header: str = Field(
        default=DEFAULT_IDEMPOTENCY_KEY_HEADER,
        description="Name of the header carrying the idempotency key",
    )
    intent_validator: IntentValidator | None = Field(
        default=None,
        description="Policy deciding whether a keyed request is guarded",
    )
    data_adapter: DataAdapter | None = Field(
        default=None,
        description="Store for idempotency resources",
    )
    response_validator: ResponseValidator | None = Field(
        default=None,
        description="Policy deciding whether a response is persisted",
    )
    continue_on_hit: bool = Field(
        default=True,
        description="Invoke the continuation after replaying a cached response",
    )

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("idempotency_key_header")
    @classmethod
    def validate_idempotency_key_header(cls, v: str) -> str:
        """Validate and normalize the key header name.

        Args:
            v: Header name.

        Returns:
            Lowercase, stripped header name.

        Raises:
            ValueError: If the name is empty or contains whitespace.

        Example:
            >>> IdempotencyConfig(idempotency_key_header=" Idempotency-Key ").idempotency_key_header
            'idempotency-key'
        """
        name = v.strip().lower()
        if not name:
            raise ValueError("idempotency_key_header must not be empty")
        if any(c.isspace() for c in name):
            raise ValueError(f"idempotency_key_header must not contain whitespace, got {v!r}")
        return name

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_", **overrides: Any) -> "IdempotencyConfig":
        """Create configuration from environment variables.

        Only the scalar settings can come from the environment; collaborators
        are passed as keyword overrides.

        Args:
            prefix: Prefix for environment variable names. Default is "IDEMPOTENCY_".
            **overrides: Values that take precedence over the environment.

        Returns:
            IdempotencyConfig instance populated from environment variables.

        Raises:
            ValueError: If a boolean variable holds an unrecognized value.

        Example:
            >>> import os
            >>> os.environ['IDEMPOTENCY_CONTINUE_ON_HIT'] = 'false'
            >>> IdempotencyConfig.from_env().continue_on_hit
            False
        """
        config_dict: dict[str, Any] = {}

        header = os.environ.get(f"{prefix}IDEMPOTENCY_KEY_HEADER")
        if header is not None:
            config_dict["idempotency_key_header"] = header

        continue_on_hit = os.environ.get(f"{prefix}CONTINUE_ON_HIT")
        if continue_on_hit is not None:
            lowered = continue_on_hit.strip().lower()
            if lowered in _TRUE_VALUES:
                config_dict["continue_on_hit"] = True
            elif lowered in _FALSE_VALUES:
                config_dict["continue_on_hit"] = False
            else:
                raise ValueError(
                    f"{prefix}CONTINUE_ON_HIT must be a boolean, got {continue_on_hit!r}"
                )

        config_dict.update(overrides)
        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Create configuration from a dictionary.

        Args:
            config_dict: Dictionary with configuration values.

        Returns:
            IdempotencyConfig instance populated from the dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
