# precast_pricing/db/enums.py
import enum


# AuditLog related enums
class AuditEntityType(enum.Enum):
    Piece = "piece"
    FormulaLine = "formula_line"
    MaterialZonePrice = "material_zone_price"
    ProcessParameters = "process_parameters"
    PieceZonePrice = "piece_zone_price"
    MonthClosure = "month_closure"
    SystemConfig = "system_config"


class AuditAction(enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    system = "system"


# Historical comparator
class PriceTrend(enum.Enum):
    up = "up"
    down = "down"
    equal = "equal"
