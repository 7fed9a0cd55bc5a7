from fastapi import Request

from worksite.services.directory import DirectoryClient
from worksite.services.ledger import LedgerBook
from worksite.services.report_generator import ReportGenerator


def get_directory(request: Request) -> DirectoryClient:
    return request.app.state.directory


def get_book(request: Request) -> LedgerBook:
    return request.app.state.book


def get_report_generator(request: Request) -> ReportGenerator:
    return request.app.state.reports
