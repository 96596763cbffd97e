"""
Technical aspects of a liability: what has to be done and how the
result is reported.
"""

from ..context.store import is_content_hash
from .errors import InvalidParameter


class Technical:
    """Interface for technical parameter and report validation."""

    name = "technical"

    def validate_parameter(self, parameter) -> None:
        raise NotImplementedError

    def validate_report(self, report) -> None:
        raise NotImplementedError


class PureIPFS(Technical):
    """
    Objective and report are both content hashes.

    The objective points at a task description in the content store,
    the report points at the recorded trajectory.
    """

    name = "pure_ipfs"

    def validate_parameter(self, parameter) -> None:
        if not is_content_hash(parameter):
            raise InvalidParameter(f"objective is not a content hash: {parameter!r}")

    def validate_report(self, report) -> None:
        if not is_content_hash(report):
            raise InvalidParameter(f"report is not a content hash: {report!r}")
