"""Exception hierarchy for the document pipeline.

Stage functions raise these; only the orchestrator boundary converts them into
FLAGGED document results.
"""

from __future__ import annotations


class LoanDocError(Exception):
    """Base class for all pipeline errors."""


class UnknownDocumentType(LoanDocError, KeyError):
    def __init__(self, doc_type: object) -> None:
        super().__init__(f"Unknown document type: {doc_type!r}")
        self.doc_type = doc_type

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return self.args[0]


class ConfigError(LoanDocError):
    """A YAML config file is missing or does not match its schema."""


class CollaboratorError(LoanDocError):
    """The content generator or the compliance reviewer failed."""


class CollaboratorTimeout(CollaboratorError, TimeoutError):
    """A collaborator did not answer within the caller-supplied timeout."""


class ProseFormatError(CollaboratorError):
    """Generated content could not be parsed into a section mapping."""


class UnknownProgram(LoanDocError, KeyError):
    def __init__(self, program_id: object) -> None:
        super().__init__(f"Unknown loan program: {program_id!r}")
        self.program_id = program_id

    def __str__(self) -> str:
        return self.args[0]
