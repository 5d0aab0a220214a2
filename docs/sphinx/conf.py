# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Sphinx configuration for the semform documentation."""

project = "semform"
author = "Semform Contributors"
release = "0.1.0"

extensions: list[str] = ["sphinx.ext.autodoc", "sphinx.ext.napoleon"]

napoleon_google_docstring = True
napoleon_numpy_docstring = False
autodoc_member_order = "bysource"

html_theme = "alabaster"
