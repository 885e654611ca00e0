import uuid
from datetime import date
from typing import Any

from sqlmodel import Session, func, select

from app.core.security import get_password_hash, verify_password
from app.models import (
    Property,
    PropertyCreate,
    PropertyUpdate,
    Report,
    ReportCreate,
    ReportFile,
    ReportFileCreate,
    ReportUpdate,
    Subscription,
    User,
    UserCreate,
    UserSettings,
    UserSettingsUpdate,
    UserUpdate,
    get_datetime_utc,
)


def create_user(*, session: Session, user_create: UserCreate) -> User:
    db_obj = User.model_validate(
        user_create, update={"hashed_password": get_password_hash(user_create.password)}
    )
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def update_user(*, session: Session, db_user: User, user_in: UserUpdate) -> Any:
    user_data = user_in.model_dump(exclude_unset=True)
    extra_data = {}
    if "password" in user_data:
        password = user_data["password"]
        hashed_password = get_password_hash(password)
        extra_data["hashed_password"] = hashed_password
    db_user.sqlmodel_update(user_data, update=extra_data)
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_user_by_email(*, session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == email)
    session_user = session.exec(statement).first()
    return session_user


# Dummy hash to use for timing attack prevention when user is not found
# This is an Argon2 hash of a random password, used to ensure constant-time comparison
DUMMY_HASH = "$argon2id$v=19$m=65536,t=3,p=4$MjQyZWE1MzBjYjJlZTI0Yw$YTU4NGM5ZTZmYjE2NzZlZjY0ZWY3ZGRkY2U2OWFjNjk"


def authenticate(*, session: Session, email: str, password: str) -> User | None:
    db_user = get_user_by_email(session=session, email=email)
    if not db_user:
        # Prevent timing attacks by running password verification even when user doesn't exist
        verify_password(password, DUMMY_HASH)
        return None
    verified, updated_password_hash = verify_password(password, db_user.hashed_password)
    if not verified:
        return None
    if updated_password_hash:
        db_user.hashed_password = updated_password_hash
        session.add(db_user)
        session.commit()
        session.refresh(db_user)
    return db_user


def create_property(*, session: Session, property_in: PropertyCreate, user_id: uuid.UUID) -> Property:
    db_property = Property.model_validate(property_in, update={"user_id": user_id})
    session.add(db_property)
    session.commit()
    session.refresh(db_property)
    return db_property


def update_property(*, session: Session, db_property: Property, property_in: PropertyUpdate) -> Property:
    property_data = property_in.model_dump(exclude_unset=True)
    db_property.sqlmodel_update(property_data, update={"updated_at": get_datetime_utc()})
    session.add(db_property)
    session.commit()
    session.refresh(db_property)
    return db_property


def count_user_properties(*, session: Session, user_id: uuid.UUID) -> int:
    statement = select(func.count()).select_from(Property).where(Property.user_id == user_id)
    return session.exec(statement).one()


def get_user_properties(*, session: Session, user_id: uuid.UUID) -> list[Property]:
    statement = (
        select(Property)
        .where(Property.user_id == user_id)
        .order_by(Property.created_at.desc())
    )
    return list(session.exec(statement).all())


def get_user_reports(
    *, session: Session, user_id: uuid.UUID, property_id: uuid.UUID | None = None
) -> list[Report]:
    statement = select(Report).where(Report.user_id == user_id)
    if property_id is not None:
        statement = statement.where(Report.property_id == property_id)
    return list(session.exec(statement.order_by(Report.created_at.desc())).all())


def current_report_period(today: date | None = None) -> tuple[int, int]:
    """Reports are written for the previous calendar month: return its (month, year)."""
    today = today or get_datetime_utc().date()
    if today.month == 1:
        return 12, today.year - 1
    return today.month - 1, today.year


def property_has_reports(*, session: Session, property_id: uuid.UUID) -> bool:
    statement = select(Report.id).where(Report.property_id == property_id).limit(1)
    return session.exec(statement).first() is not None


def get_latest_report(*, session: Session, property_id: uuid.UUID) -> Report | None:
    statement = (
        select(Report)
        .where(Report.property_id == property_id)
        .order_by(Report.year.desc(), Report.month.desc(), Report.created_at.desc())
    )
    return session.exec(statement).first()


def create_report(*, session: Session, report_in: ReportCreate, user_id: uuid.UUID) -> Report:
    db_report = Report.model_validate(
        report_in, update={"user_id": user_id, "status": "draft"}
    )
    session.add(db_report)
    session.commit()
    session.refresh(db_report)
    return db_report


def update_report(*, session: Session, db_report: Report, report_in: ReportUpdate | dict) -> Report:
    if isinstance(report_in, dict):
        report_data = report_in
    else:
        report_data = report_in.model_dump(exclude_unset=True)
    db_report.sqlmodel_update(report_data, update={"updated_at": get_datetime_utc()})
    session.add(db_report)
    session.commit()
    session.refresh(db_report)
    return db_report


def count_period_reports(
    *, session: Session, property_id: uuid.UUID, month: int, year: int
) -> int:
    statement = (
        select(func.count())
        .select_from(Report)
        .where(Report.property_id == property_id)
        .where(Report.month == month)
        .where(Report.year == year)
    )
    return session.exec(statement).one()


def get_prior_complete_report(
    *, session: Session, property_id: uuid.UUID, month: int, year: int
) -> Report | None:
    """Return the finished report for the month before ``month``/``year``."""
    prior_month = 12 if month == 1 else month - 1
    prior_year = year - 1 if month == 1 else year
    statement = (
        select(Report)
        .where(Report.property_id == property_id)
        .where(Report.month == prior_month)
        .where(Report.year == prior_year)
        .where(Report.status == "complete")
        .order_by(Report.created_at.desc())
    )
    return session.exec(statement).first()


def create_report_file(
    *, session: Session, file_in: ReportFileCreate, user_id: uuid.UUID
) -> ReportFile:
    db_file = ReportFile.model_validate(file_in, update={"user_id": user_id})
    session.add(db_file)
    session.commit()
    session.refresh(db_file)
    return db_file


def get_report_files(*, session: Session, report_id: uuid.UUID) -> list[ReportFile]:
    statement = (
        select(ReportFile)
        .where(ReportFile.report_id == report_id)
        .order_by(ReportFile.created_at.desc())
    )
    return list(session.exec(statement).all())


def get_report_file_by_type(
    *, session: Session, report_id: uuid.UUID, file_type: str
) -> ReportFile | None:
    statement = (
        select(ReportFile)
        .where(ReportFile.report_id == report_id)
        .where(ReportFile.file_type == file_type)
    )
    return session.exec(statement).first()


def get_or_create_user_settings(*, session: Session, user_id: uuid.UUID) -> UserSettings:
    db_settings = session.exec(
        select(UserSettings).where(UserSettings.user_id == user_id)
    ).first()
    if db_settings:
        return db_settings
    db_settings = UserSettings(user_id=user_id)
    session.add(db_settings)
    session.commit()
    session.refresh(db_settings)
    return db_settings


def update_user_settings(
    *, session: Session, user_id: uuid.UUID, settings_in: UserSettingsUpdate | dict
) -> UserSettings:
    db_settings = get_or_create_user_settings(session=session, user_id=user_id)
    if isinstance(settings_in, dict):
        settings_data = settings_in
    else:
        settings_data = settings_in.model_dump(exclude_unset=True)
    db_settings.sqlmodel_update(settings_data, update={"updated_at": get_datetime_utc()})
    session.add(db_settings)
    session.commit()
    session.refresh(db_settings)
    return db_settings


def get_subscription(*, session: Session, user_id: uuid.UUID) -> Subscription | None:
    statement = select(Subscription).where(Subscription.user_id == user_id)
    return session.exec(statement).first()


def get_subscription_by_customer(*, session: Session, customer_id: str) -> Subscription | None:
    statement = select(Subscription).where(Subscription.stripe_customer_id == customer_id)
    return session.exec(statement).first()


def upsert_subscription(*, session: Session, user_id: uuid.UUID, **fields: Any) -> Subscription:
    db_subscription = get_subscription(session=session, user_id=user_id)
    if db_subscription is None:
        db_subscription = Subscription(user_id=user_id, **fields)
    else:
        db_subscription.sqlmodel_update(fields, update={"updated_at": get_datetime_utc()})
    session.add(db_subscription)
    session.commit()
    session.refresh(db_subscription)
    return db_subscription
