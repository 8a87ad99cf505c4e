# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Error taxonomy.

Only InputError and ProjectNotFound cross into callers as exceptions.
BuildFailure, AdapterFailure and IndexUnavailable are caught at the
registry / retriever boundary and reported as structured state.
"""


class PagevaultError(Exception):
    """Base class for all engine errors."""


class InputError(PagevaultError, ValueError):
    """Invalid request input (project id, query, weights, k)."""


class ProjectNotFound(PagevaultError, LookupError):
    def __init__(self, project_id: str):
        super().__init__(f"Project '{project_id}' not found")
        self.project_id = project_id


class IndexUnavailable(PagevaultError):
    """No successful build exists yet for the project."""

    def __init__(self, project_id: str):
        super().__init__(f"No index built for project '{project_id}'")
        self.project_id = project_id


class BuildFailure(PagevaultError):
    def __init__(self, project_id: str, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed for project '{project_id}': {cause}")
        self.project_id = project_id
        self.stage = stage
        self.cause = cause


class AdapterFailure(PagevaultError):
    """The semantic index could not answer (error or timeout)."""
