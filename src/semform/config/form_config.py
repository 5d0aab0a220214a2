# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Data model and YAML loader for form configuration files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError

from semform.forms.mapping import CompositeConfig
from semform.forms.schema import build_composite_schema
from semform.forms.session import VALIDATION_DEBOUNCE_DELAY, FormSession
from semform.sparql.services import LabelService, QueryService

# ###############
# Public Interface
# ###############


class FormConfigError(Exception):
    """Raised when a form configuration file cannot be read or is invalid."""


class FormConfig(CompositeConfig):
    """Top-level form configuration.

    Extends the configuration of the root composite with settings that only
    apply to the form as a whole.

    Attributes:
        subject_validation_query: ASK query checking a new root subject.
        validation_debounce: Validation debounce window in seconds.
        persistence: Persistence backend configuration, see
            ``semform.persistence.make_persistence``.
    """

    subject_validation_query: str | None = Field(alias="subject-validation-query", default=None)
    validation_debounce: float = Field(alias="validation-debounce", default=VALIDATION_DEBOUNCE_DELAY, ge=0)
    persistence: dict[str, Any] | None = None


def load_form_config(path: Path) -> FormConfig:
    """Load and validate a form configuration file.

    An empty file is treated as a form without fields.

    Args:
        path: Path to the YAML file.

    Returns:
        A validated FormConfig instance.

    Raises:
        FormConfigError: If the file cannot be read, contains invalid YAML,
            or does not conform to the expected schema.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FormConfigError(f"Cannot read form configuration '{path}': {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise FormConfigError(f"Invalid YAML in form configuration '{path}': {exc}") from exc

    if data is None:
        data = {}

    try:
        return FormConfig.model_validate(data)
    except ValidationError as exc:
        raise FormConfigError(f"Invalid form configuration '{path}': {exc}") from exc


def create_form_session(
    config: FormConfig,
    query_service: QueryService,
    label_service: LabelService | None = None,
) -> FormSession:
    """Create an editing session for the form described by ``config``."""
    return FormSession(
        build_composite_schema(config),
        query_service,
        label_service,
        debounce=config.validation_debounce,
        subject_validation_query=config.subject_validation_query,
    )
