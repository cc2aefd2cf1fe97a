"""
Dashboard statistics endpoints
"""

from datetime import date, datetime
from typing import Optional
from fastapi import APIRouter, Depends

from .dependencies import ClubSystem, get_club_system
from .schemas import MoneyModel, dashboard_response, financial_report_response
from ..dashboard import contributions_by_year, financial_report
from ..errors import ValidationError


router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    as_of: Optional[datetime] = None,
    system: ClubSystem = Depends(get_club_system)
):
    """Fund totals, loan dues and members yet to contribute this month"""
    return dashboard_response(system.dashboard(now=as_of))


@router.get("/contributions/yearly")
async def get_club_yearly_contributions(system: ClubSystem = Depends(get_club_system)):
    """Club-wide contribution totals per year"""
    history = contributions_by_year(
        system.transaction_ledger.list_transactions(), currency=system.currency
    )
    return {
        "years": [
            {
                "year": row["year"],
                "total": MoneyModel.from_money(row["total"]).model_dump(),
                "count": row["count"]
            }
            for row in history
        ]
    }


@router.get("/report")
async def get_financial_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    system: ClubSystem = Depends(get_club_system)
):
    """Totals per transaction type between two dates (inclusive)"""
    if start_date and end_date and start_date > end_date:
        raise ValidationError(
            "start_date must not be after end_date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
        )
    transactions = system.transaction_ledger.list_transactions(start_date=start_date, end_date=end_date)
    report = financial_report(transactions, start_date, end_date, currency=system.currency)
    return financial_report_response(report)
