"""
Request-scoped service wiring for the API.

Domain lists and settings are built per request, so each request sees one
consistent snapshot; the analysis cache is shared by the whole process.
"""

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from spamdetective.database import SessionLocal
from spamdetective.services.account_repository import AccountRepository
from spamdetective.services.cache_service import AnalysisCache, cache_store
from spamdetective.services.external_checks import ExternalChecker
from spamdetective.services.lists_service import DomainLists
from spamdetective.services.settings_service import SettingsAccessor, SettingsStore
from spamdetective.services.user_analyzer import SpamAnalyzer
from spamdetective.services.user_manager import UserManager

analysis_cache = AnalysisCache(cache_store)
external_checker = ExternalChecker(cache_store)


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_repository(session_factory: sessionmaker = Depends(get_session_factory)) -> AccountRepository:
    return AccountRepository(session_factory)


def get_domain_lists(db: Session = Depends(get_db)) -> DomainLists:
    return DomainLists(db, analysis_cache)


def get_settings_accessor(db: Session = Depends(get_db)) -> SettingsAccessor:
    return SettingsAccessor(SettingsStore(db), analysis_cache)


def get_user_manager(repository: AccountRepository = Depends(get_repository)) -> UserManager:
    return UserManager(repository, analysis_cache)


def get_analyzer(
    repository: AccountRepository = Depends(get_repository),
    settings_accessor: SettingsAccessor = Depends(get_settings_accessor),
    domain_lists: DomainLists = Depends(get_domain_lists),
    user_manager: UserManager = Depends(get_user_manager),
) -> SpamAnalyzer:
    return SpamAnalyzer(
        repository,
        settings_accessor=settings_accessor,
        domain_lists=domain_lists,
        analysis_cache=analysis_cache,
        external_checker=external_checker,
        user_manager=user_manager,
    )
