from precast_pricing.db.session import get_engine
from precast_pricing.db.base import Base
#-------------------导入所有表-----------------------
from precast_pricing.models.zone import Zone  # noqa: F401
from precast_pricing.models.material import Material  # noqa: F401
from precast_pricing.models.piece import Piece  # noqa: F401
from precast_pricing.models.formula_line import FormulaLine  # noqa: F401
from precast_pricing.models.material_zone_price import MaterialZonePrice  # noqa: F401
from precast_pricing.models.process_parameters import ProcessParameters  # noqa: F401
from precast_pricing.models.piece_zone_price import PieceZonePrice  # noqa: F401
from precast_pricing.models.month_closure import MonthClosure  # noqa: F401
from precast_pricing.models.system_config import SystemConfig  # noqa: F401
from precast_pricing.models.audit_log import AuditLog  # noqa: F401


def init_db(engine=None):
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
