"""
Exceptions for pathdiag
"""

from typing import Optional


class PathDiagError(Exception):
    """Base exception for all pathdiag errors"""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ValidationError(PathDiagError):
    """Invalid probe option"""
    pass


class ResolutionError(PathDiagError):
    """Target name could not be resolved"""

    def __init__(self, target: str, details: Optional[str] = None):
        super().__init__(f"Cannot resolve target name '{target}'", details)
        self.target = target


class UnresolvableAddress(ResolutionError):
    """Target has no address of the requested family"""

    def __init__(self, target: str, family: int):
        super().__init__(target, f"no IPv{family} address found")
        self.message = f"Target address absent for '{target}'"
        self.family = family


class ProbeFailure(PathDiagError):
    """A single echo attempt failed below the ICMP layer"""
    pass


class NoPingResult(ProbeFailure):
    """No usable reply was received from the target"""

    def __init__(self, target: str, status: str):
        super().__init__(f"No ping result from '{target}'", status)
        self.target = target
        self.status = status


class Cancelled(PathDiagError):
    """The run was interrupted by the user"""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)
