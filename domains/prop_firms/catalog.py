"""
Default prop firm catalog.

New users are seeded with these firms, none selected. Keywords are what the
transaction matcher looks for in bank statement descriptions.
"""

from typing import List

from domains.prop_firms.models import PropFirm


DEFAULT_CATALOG: List[PropFirm] = [
    PropFirm(
        id="ftmo",
        name="FTMO",
        description="Forex and futures evaluation challenges",
        match_keyword="FTMO",
    ),
    PropFirm(
        id="topstep",
        name="Topstep",
        description="Futures trading combines",
        match_keyword="TOPSTEP",
    ),
    PropFirm(
        id="apex-trader-funding",
        name="Apex Trader Funding",
        description="Futures evaluation accounts",
        match_keyword="APEX TRADER",
    ),
    PropFirm(
        id="the-funded-trader",
        name="The Funded Trader",
        description="Forex challenges and instant funding",
        match_keyword="FUNDED TRADER",
    ),
    PropFirm(
        id="fundednext",
        name="FundedNext",
        description="Forex and futures challenges",
        match_keyword="FUNDEDNEXT",
    ),
    PropFirm(
        id="e8-markets",
        name="E8 Markets",
        description="Forex and futures evaluations",
        match_keyword="E8 MARKETS",
    ),
    PropFirm(
        id="earn2trade",
        name="Earn2Trade",
        description="Futures trader career path",
        match_keyword="EARN2TRADE",
    ),
    PropFirm(
        id="take-profit-trader",
        name="Take Profit Trader",
        description="Futures tests with daily payouts",
        match_keyword="TAKE PROFIT TRADER",
    ),
]


def default_catalog() -> List[PropFirm]:
    return list(DEFAULT_CATALOG)


def catalog_ids() -> List[str]:
    return [firm.id for firm in DEFAULT_CATALOG]
