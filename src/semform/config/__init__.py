# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Form configuration files."""

from semform.config.form_config import FormConfig, FormConfigError, create_form_session, load_form_config

__all__ = [
    "FormConfig",
    "FormConfigError",
    "create_form_session",
    "load_form_config",
]
