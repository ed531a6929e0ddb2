"""Strategy-tab models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class StrategyFit(StrEnum):
    NATIONAL = "National Strategy"
    GROUP = "Group Strategy"
    SUBSIDIARY = "Subsidiary Direction"


class AIDirectionalSignal(StrEnum):
    CONTINUE = "CONTINUE"
    NEED_MORE_INFO = "NEED_MORE_INFO"
    RISK_ALERT = "RISK_ALERT"


class StrategyInfo(BaseModel):
    """Direct information captured on the Strategy tab."""

    strategy_fit: StrategyFit = StrategyFit.GROUP
    demand_urgency: str = ""
    bottleneck: str = ""
    product_and_edge: str = ""
    trl: str = ""
    resources: str = ""
    supporting_materials_present: str = ""
    information_completeness_note: str = ""
    ai_directional_signal: AIDirectionalSignal = AIDirectionalSignal.NEED_MORE_INFO
