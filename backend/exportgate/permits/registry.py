"""
Permit type registry.

Each permit type carries its issuing authority, the number of days allowed
to comply after upload, and the validation strategy for its documents.
Adding a permit type means adding one registry entry.
"""

from dataclasses import dataclass

from exportgate.errors import UnknownPermitType
from exportgate.permits.validators import ExtensionAllowListValidator, PermitValidator


@dataclass(frozen=True)
class PermitType:
    code: str
    name: str
    authority: str
    deadline_days: int
    mandatory: bool
    validator: PermitValidator

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "authority": self.authority,
            "deadline_days": self.deadline_days,
            "mandatory": self.mandatory,
        }


# code → (name, authority, deadline days, allowed extensions)
_PERMIT_DEFINITIONS = {
    "STA_2010": ("Strategic Trade Authorization (STA 2010)", "MITI", 30, ("pdf", "doc", "docx", "jpg", "jpeg", "png")),
    "AICA": ("Advanced Integrated Circuit Authorization", "MCMC", 14, ("pdf", "doc", "docx")),
    "TechDocs": ("Technical Documentation", "Internal", 7, ("pdf", "doc", "docx", "xls", "xlsx")),
    "SIRIM": ("SIRIM Certification", "SIRIM", 21, ("pdf", "jpg", "jpeg", "png")),
    "CyberSecurity": ("CyberSecurity Malaysia Approval", "CyberSecurity Malaysia", 21, ("pdf", "doc", "docx")),
}


class PermitRegistry:
    def __init__(self, permit_types: list[PermitType]):
        self._types = {pt.code: pt for pt in permit_types}

    def __contains__(self, code: str) -> bool:
        return code in self._types

    def __iter__(self):
        return iter(self._types.values())

    def codes(self) -> list[str]:
        return list(self._types)

    def get(self, code: str) -> PermitType:
        """Look up a permit type. Raises UnknownPermitType."""
        try:
            return self._types[code]
        except KeyError:
            raise UnknownPermitType(code, self.codes()) from None


def build_registry(max_file_bytes: int) -> PermitRegistry:
    return PermitRegistry([
        PermitType(
            code=code,
            name=name,
            authority=authority,
            deadline_days=days,
            mandatory=True,
            validator=ExtensionAllowListValidator(extensions, max_file_bytes),
        )
        for code, (name, authority, days, extensions) in _PERMIT_DEFINITIONS.items()
    ])
