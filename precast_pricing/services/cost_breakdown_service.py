# precast_pricing/services/cost_breakdown_service.py
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from precast_pricing.config import PricingPolicy
from precast_pricing.logger import get_logger
from precast_pricing.models.formula_line import FormulaLine
from precast_pricing.models.material import Material
from precast_pricing.models.piece import Piece
from precast_pricing.services.material_price_service import MaterialPriceService
from precast_pricing.services.price_history_service import PriceHistoryService
from precast_pricing.services.process_parameter_service import ProcessParameterService
from precast_pricing.services.reference_data import load_piece, load_zone, load_material
from precast_pricing.services.system_config_service import SystemConfigService
from precast_pricing.services.temporal_resolution import to_date

logger = get_logger(__name__)

ZERO = Decimal("0")
KG_PER_TON = Decimal("1000")

# (parameter field, policy switch or None when always applied, term name)
PROCESS_TERMS = (
    ("energy_per_ton", None, "energy"),
    ("overhead_factory_per_ton", "include_factory_overhead", "factory_overhead"),
    ("overhead_company_per_ton", "include_company_overhead", "company_overhead"),
    ("profit_per_ton", "include_profit", "profit"),
    ("engineering_per_ton", "include_engineering", "engineering"),
)


def _dec(value) -> Decimal:
    return Decimal(value) if value is not None else ZERO


@dataclass
class MaterialCostLine:
    material_id: str
    material_code: str
    material_name: str
    unit: str
    quantity_per_unit: Decimal
    waste_factor: Decimal
    effective_quantity: Decimal
    unit_price: Optional[Decimal]
    price_valid_from: Optional[date]
    cost: Decimal

    @property
    def missing_price(self) -> bool:
        return self.unit_price is None


@dataclass
class CostBreakdown:
    '''
    Read-only projection of what one unit of a piece costs in a zone on a date.
    total = materials_cost + process_cost + labor_concrete_cost + labor_steel_cost
    '''
    piece_id: str
    zone_id: str
    as_of: date

    materials_cost: Decimal = ZERO
    process_cost: Decimal = ZERO
    labor_concrete_cost: Decimal = ZERO
    labor_steel_cost: Decimal = ZERO
    total: Decimal = ZERO

    process_terms: Dict[str, Decimal] = field(default_factory=dict)
    lines: List[MaterialCostLine] = field(default_factory=list)

    parameters_month: Optional[date] = None
    fallback: bool = False

    warnings: List[str] = field(default_factory=list)
    missing_prices: List[str] = field(default_factory=list)
    missing_geom: bool = False
    missing_process_params: bool = False

    @property
    def labor_cost(self) -> Decimal:
        return self.labor_concrete_cost + self.labor_steel_cost

    @property
    def complete(self) -> bool:
        return not (self.missing_prices or self.missing_geom or self.missing_process_params)


class CostBreakdownService:
    """
    Cost breakdown calculator.

    Combines the bill of materials, material prices resolved as of a date,
    zone/month process parameters (with previous-month fallback) and piece
    geometry. Never writes: data gaps become warnings and flags.
    """

    def __init__(
        self,
        db: Session,
        material_price_service: MaterialPriceService,
        process_parameter_service: ProcessParameterService,
        system_config_service: SystemConfigService,
        price_history_service: Optional[PriceHistoryService] = None,
    ):
        self.db = db
        self.material_price_service = material_price_service
        self.process_parameter_service = process_parameter_service
        self.system_config_service = system_config_service
        self.price_history_service = price_history_service or PriceHistoryService(db)

    def calculate(
        self,
        *,
        piece_id: str,
        zone_id: str,
        as_of,
        policy: Optional[PricingPolicy] = None,
    ) -> CostBreakdown:
        '''
        Compute the breakdown for (piece, zone, as_of).

        :param policy: pricing policy to apply; defaults to the stored policy merged over defaults
        :raises NotFoundError: piece or zone does not exist
        :rtype: CostBreakdown
        '''
        piece = load_piece(self.db, piece_id)
        load_zone(self.db, zone_id)
        as_of = to_date(as_of)
        if policy is None:
            policy = self.system_config_service.get_pricing_policy()

        breakdown = CostBreakdown(piece_id=piece.id, zone_id=zone_id, as_of=as_of)

        # 1️⃣ 材料成本
        self._apply_materials(breakdown, piece, zone_id, as_of)

        # 2️⃣ 几何
        breakdown.missing_geom = not piece.has_geometry()
        if breakdown.missing_geom:
            breakdown.warnings.append(
                f"Piece {piece.code} has no steel, concrete or weight; process and labor cost cannot be computed"
            )

        # 3️⃣ 工艺参数 + 人工
        self._apply_process(breakdown, piece, zone_id, as_of, policy)

        # 4️⃣ 汇总
        breakdown.total = (
            breakdown.materials_cost
            + breakdown.process_cost
            + breakdown.labor_concrete_cost
            + breakdown.labor_steel_cost
        )
        self._round(breakdown, policy.money_places)

        logger.debug(
            "Breakdown piece=%s zone=%s as_of=%s total=%s warnings=%d",
            piece.id, zone_id, as_of.isoformat(), breakdown.total, len(breakdown.warnings),
        )
        return breakdown

    def _apply_materials(self, breakdown: CostBreakdown, piece: Piece, zone_id: str, as_of: date) -> None:
        rows = self.db.execute(
            select(FormulaLine, Material)
            .join(Material, FormulaLine.material_id == Material.id)
            .where(FormulaLine.piece_id == piece.id)
            .order_by(Material.category, Material.name)
        ).unique().all()

        if not rows:
            breakdown.warnings.append(f"Piece {piece.code} has no formula; materials cost is zero")
            return

        prices = self.material_price_service.resolve_prices(
            [line.material_id for line, _ in rows], zone_id, as_of
        )

        total = ZERO
        for line, material in rows:
            qty = _dec(line.quantity_per_unit)
            waste = _dec(line.waste_factor)
            effective_qty = qty * (1 + waste)
            price_row = prices.get(line.material_id)

            if price_row is None:
                breakdown.missing_prices.append(material.id)
                breakdown.warnings.append(
                    f"No price for material {material.name} ({material.code}) on {as_of.isoformat()}"
                )
                unit_price, valid_from, cost = None, None, ZERO
            else:
                unit_price = _dec(price_row.price)
                valid_from = price_row.valid_from
                cost = effective_qty * unit_price

            total += cost
            breakdown.lines.append(MaterialCostLine(
                material_id=material.id,
                material_code=material.code,
                material_name=material.name,
                unit=material.unit,
                quantity_per_unit=qty,
                waste_factor=waste,
                effective_quantity=effective_qty,
                unit_price=unit_price,
                price_valid_from=valid_from,
                cost=cost,
            ))

        breakdown.materials_cost = total

    def _apply_process(
        self,
        breakdown: CostBreakdown,
        piece: Piece,
        zone_id: str,
        as_of: date,
        policy: PricingPolicy,
    ) -> None:
        resolved = self.process_parameter_service.resolve_for_date(zone_id, as_of)
        if resolved is None:
            breakdown.missing_process_params = True
            breakdown.warnings.append(
                f"No process parameters for {as_of:%Y-%m} or the previous month; process and labor cost are zero"
            )
            return

        params = resolved.row
        breakdown.parameters_month = params.month_date
        breakdown.fallback = resolved.fallback
        if resolved.fallback:
            breakdown.warnings.append(
                f"Process parameters for {as_of:%Y-%m} not found; using {params.month_date:%Y-%m}"
            )

        tons = _dec(piece.ton_weight_per_unit)
        m3 = _dec(piece.m3_concrete_per_unit)
        steel_tons = _dec(piece.kg_steel_per_unit) / KG_PER_TON
        labor_rate = _dec(params.labor_rate_per_hour)

        process_cost = ZERO
        for field_name, switch, term in PROCESS_TERMS:
            if switch is not None and not getattr(policy, switch):
                continue
            amount = _dec(getattr(params, field_name)) * tons
            breakdown.process_terms[term] = amount
            process_cost += amount

        breakdown.process_cost = process_cost
        breakdown.labor_concrete_cost = _dec(params.hours_per_m3_concrete) * labor_rate * m3
        breakdown.labor_steel_cost = _dec(params.hours_per_ton_steel) * labor_rate * steel_tons

    @staticmethod
    def _round(breakdown: CostBreakdown, places: int) -> None:
        quantum = Decimal(1).scaleb(-places)
        for name in ("materials_cost", "process_cost", "labor_concrete_cost", "labor_steel_cost", "total"):
            setattr(breakdown, name, getattr(breakdown, name).quantize(quantum))
        breakdown.process_terms = {k: v.quantize(quantum) for k, v in breakdown.process_terms.items()}
        for line in breakdown.lines:
            line.cost = line.cost.quantize(quantum)

    # ======================================================
    # 🔁 Material price impact
    # ======================================================

    def recalculate_impact(self, *, material_id: str, zone_id: str, as_of) -> List[dict]:
        '''
        Recompute every active piece that uses a material and compare the new
        total with the price currently published for the piece in the zone.
        '''
        load_material(self.db, material_id)
        load_zone(self.db, zone_id)
        as_of = to_date(as_of)
        policy = self.system_config_service.get_pricing_policy()

        pieces = self.db.execute(
            select(Piece)
            .join(FormulaLine, FormulaLine.piece_id == Piece.id)
            .where(FormulaLine.material_id == material_id, Piece.is_active.is_(True))
            .order_by(Piece.name)
        ).scalars().unique()

        impact = []
        for piece in pieces:
            breakdown = self.calculate(piece_id=piece.id, zone_id=zone_id, as_of=as_of, policy=policy)
            published = self.price_history_service.resolve_price(piece.id, zone_id, as_of)
            published_price = published.final_price if published is not None else None
            difference = None
            difference_percent = None
            if published_price is not None:
                difference = breakdown.total - published_price
                if published_price != 0:
                    difference_percent = difference / published_price * 100
            impact.append({
                "piece_id": piece.id,
                "piece_code": piece.code,
                "piece_name": piece.name,
                "calculated_total": breakdown.total,
                "published_price": published_price,
                "published_effective_date": published.effective_date if published is not None else None,
                "difference": difference,
                "difference_percent": difference_percent,
                "missing_prices": list(breakdown.missing_prices),
                "warnings": list(breakdown.warnings),
            })
        logger.info(
            "Recalculated %d pieces for material %s in zone %s", len(impact), material_id, zone_id
        )
        return impact
