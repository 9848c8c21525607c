"""
Checklist vocabulary for the FOR-ATA-057 360° GSE inspection.

The item table is immutable and versioned: a new form revision is a new
``ChecklistTable`` registered in ``CHECKLIST_TABLES``, not an edit of an
existing one. The layout engine receives the table it should use instead of
reaching for module state.

Statuses are a closed variant: the three recorded outcomes plus an
``UNRECOGNIZED`` arm that keeps the raw upstream value so it can be surfaced.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


class ChecklistStatus(Enum):
    """Outcome recorded for one checklist item."""
    CONFORME = "conforme"
    NO_CONFORME = "no_conforme"
    NO_APLICA = "no_aplica"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class StatusValue:
    """A parsed checklist status; ``raw`` is only meaningful for UNRECOGNIZED."""
    status: ChecklistStatus
    raw: str = ""

    @property
    def is_non_conforming(self) -> bool:
        return self.status is ChecklistStatus.NO_CONFORME


_KNOWN_STATUSES = {
    s.value: s for s in ChecklistStatus if s is not ChecklistStatus.UNRECOGNIZED
}


def parse_status(value: Any) -> Optional[StatusValue]:
    """
    Parse a raw status value from the checklist data.

    Returns:
        None for an absent status (None or empty string), a known status,
        or an UNRECOGNIZED status carrying the raw value.
    """
    if value is None or value == "":
        return None
    known = _KNOWN_STATUSES.get(value) if isinstance(value, str) else None
    if known:
        return StatusValue(known)
    return StatusValue(ChecklistStatus.UNRECOGNIZED, raw=str(value))


@dataclass(frozen=True)
class ChecklistItem:
    """One fixed inspection point."""
    code: str
    description: str
    order_index: int


@dataclass(frozen=True)
class ChecklistTable:
    """An ordered, versioned checklist vocabulary."""
    form_code: str
    version: str
    items: Tuple[ChecklistItem, ...]

    @property
    def codes(self) -> Tuple[str, ...]:
        return tuple(item.code for item in self.items)

    def __contains__(self, code: object) -> bool:
        return any(item.code == code for item in self.items)

    def __len__(self) -> int:
        return len(self.items)

    def description(self, code: str) -> str:
        for item in self.items:
            if item.code == code:
                return item.description
        return ""


def _build_table(form_code: str, version: str, descriptions: Tuple[str, ...]) -> ChecklistTable:
    items = tuple(
        ChecklistItem(code=f"CHK-{i:02d}", description=text, order_index=i)
        for i, text in enumerate(descriptions, start=1)
    )
    return ChecklistTable(form_code=form_code, version=version, items=items)


FOR_ATA_057_V3 = _build_table("FOR-ATA-057", "3", (
    "Extintor vigente: verificar presencia, fecha de vencimiento y de ultima inspección. "
    "El manómetro en zona verde.",
    "Pin de seguridad: comprobar que esté colocado correctamente y sin deformaciones.",
    "Calzas: deben estar disponibles, sin fisuras ni desgaste excesivo.",
    "Placards, stickers y micas: deben estar legibles, adheridos y sin daños.",
    "Nivel de combustible: debe ser suficiente para la operación prevista.",
    "Asiento y cinturón de seguridad: revisar estado, anclaje y funcionamiento.",
    "Circulina operativa: encender y comprobar visibilidad. (Aplica a todos los equipos). "
    "Alarma de retroceso operativo (Aplica a FT-PM-TR)",
    "Luces operativas: verificar luces delanteras, traseras y de freno.",
    "Cintas reflectivas: deben estar adheridas y visibles.",
    "Pintura: sin deterioro que afecte señalización o visibilidad del equipo.",
    "Neumáticos sin desgaste: revisar presión y ausencia de grietas o desgaste de las llantas.",
    "Frenos operativos (Freno de pedal y parqueo o mano): probar funcionamiento antes de "
    "iniciar el desplazamiento.",
    "Bumpers: sin rayones, desgaste que pueda causar daños al fuselaje del avión (Aplica a FT-EM)",
    "Sólo escaleras: estabilizadores operativos, peldaños y cintas antideslizantes en buen "
    "estado, luces operativas",
))

CHECKLIST_TABLES: Mapping[str, ChecklistTable] = MappingProxyType({
    FOR_ATA_057_V3.version: FOR_ATA_057_V3,
})

CURRENT_CHECKLIST = FOR_ATA_057_V3


def get_checklist_table(version: Optional[str] = None) -> ChecklistTable:
    """
    Get a checklist table by form version.

    Args:
        version: Form version; None selects the current table

    Raises:
        KeyError: If the version is not registered
    """
    if version is None:
        return CURRENT_CHECKLIST
    return CHECKLIST_TABLES[version]
