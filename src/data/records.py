"""
Typed records for each sheet.

One dataclass per spreadsheet tab. Field names are the frame column names the
metrics packs read.
"""
from dataclasses import dataclass, fields, asdict
from datetime import datetime
from typing import Optional, List, Type, Sequence

import pandas as pd


@dataclass
class SalesRecord:
    member_id: str = ""
    customer_name: str = ""
    customer_email: str = ""
    sale_item_id: str = ""
    payment_category: str = ""
    membership_type: str = ""
    payment_date: Optional[datetime] = None
    payment_value: float = 0.0
    paid_in_money_credits: float = 0.0
    payment_vat: float = 0.0
    payment_item: str = ""
    payment_status: str = ""
    payment_method: str = ""
    payment_transaction_id: str = ""
    stripe_token: str = ""
    sold_by: str = ""
    sale_reference: str = ""
    calculated_location: str = ""
    cleaned_product: str = ""
    cleaned_category: str = ""
    net_revenue: float = 0.0
    gross_revenue: float = 0.0
    mrp_pre_tax: float = 0.0
    mrp_post_tax: float = 0.0
    discount_amount: float = 0.0
    discount_percentage: float = 0.0
    host_id: str = ""
    sec_membership_start_date: Optional[datetime] = None
    sec_membership_end_date: Optional[datetime] = None
    sec_membership_total_classes: float = 0.0
    sec_membership_classes_left: float = 0.0
    sec_membership_used_sessions: float = 0.0
    sec_membership_is_frozen: bool = False


@dataclass
class SessionRecord:
    trainer_id: str = ""
    trainer_first_name: str = ""
    trainer_last_name: str = ""
    trainer_name: str = ""
    session_id: str = ""
    session_name: str = ""
    capacity: float = 0.0
    checked_in_count: float = 0.0
    late_cancelled_count: float = 0.0
    booked_count: float = 0.0
    complimentary_count: float = 0.0
    location: str = ""
    date: Optional[datetime] = None
    day_of_week: str = ""
    time: str = ""
    total_paid: float = 0.0
    non_paid_count: float = 0.0
    unique_id_1: str = ""
    unique_id_2: str = ""
    checked_ins_with_memberships: float = 0.0
    checked_ins_with_packages: float = 0.0
    checked_ins_with_intro_offers: float = 0.0
    checked_ins_with_single_classes: float = 0.0
    class_type: str = ""
    cleaned_class: str = ""
    classes: float = 0.0
    fill_percentage: float = 0.0
    revenue: float = 0.0


@dataclass
class NewClientRecord:
    member_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: str = ""
    first_visit_date: Optional[datetime] = None
    first_visit_entity_name: str = ""
    first_visit_type: str = ""
    first_visit_location: str = ""
    payment_method: str = ""
    membership_used: str = ""
    home_location: str = ""
    class_no: float = 0.0
    trainer_name: str = ""
    is_new: str = ""
    visits_post_trial: float = 0.0
    memberships_bought_post_trial: str = ""
    purchase_count_post_trial: float = 0.0
    ltv: float = 0.0
    retention_status: str = ""
    conversion_status: str = ""
    first_purchase: Optional[datetime] = None
    no_of_visits: Optional[float] = None
    conversion_span: float = 0.0
    month_year: str = ""


@dataclass
class PayrollRecord:
    teacher_id: str = ""
    teacher_name: str = ""
    teacher_email: str = ""
    location: str = ""
    cycle_sessions: float = 0.0
    empty_cycle_sessions: float = 0.0
    non_empty_cycle_sessions: float = 0.0
    cycle_customers: float = 0.0
    cycle_paid: float = 0.0
    strength_sessions: float = 0.0
    empty_strength_sessions: float = 0.0
    non_empty_strength_sessions: float = 0.0
    strength_customers: float = 0.0
    strength_paid: float = 0.0
    barre_sessions: float = 0.0
    empty_barre_sessions: float = 0.0
    non_empty_barre_sessions: float = 0.0
    barre_customers: float = 0.0
    barre_paid: float = 0.0
    total_sessions: float = 0.0
    total_empty_sessions: float = 0.0
    total_non_empty_sessions: float = 0.0
    total_customers: float = 0.0
    total_paid: float = 0.0
    month_year: str = ""
    month_start: Optional[datetime] = None
    unique: str = ""
    converted: float = 0.0
    conversion_rate: float = 0.0
    retained: float = 0.0
    retention_rate: float = 0.0
    new_members: float = 0.0
    class_average_incl_empty: float = 0.0
    class_average_excl_empty: float = 0.0


@dataclass
class ExpirationRecord:
    unique_id: str = ""
    member_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    membership_name: str = ""
    end_date: Optional[datetime] = None
    home_location: str = ""
    current_usage: str = "-"
    id: str = ""
    order_at: Optional[datetime] = None
    sold_by: str = "-"
    membership_id: str = "-"
    frozen: bool = False
    paid: float = 0.0
    status: str = ""


@dataclass
class LeadRecord:
    id: str = ""
    full_name: str = ""
    phone: str = ""
    email: str = ""
    created_at: Optional[datetime] = None
    source_id: str = ""
    source: str = ""
    member_id: str = ""
    converted_to_customer_at: Optional[datetime] = None
    stage: str = ""
    associate: str = ""
    remarks: str = ""
    follow_up_1_date: Optional[datetime] = None
    follow_up_comments_1: str = ""
    follow_up_2_date: Optional[datetime] = None
    follow_up_comments_2: str = ""
    follow_up_3_date: Optional[datetime] = None
    follow_up_comments_3: str = ""
    follow_up_4_date: Optional[datetime] = None
    follow_up_comments_4: str = ""
    center: str = ""
    class_type: str = ""
    host_id: str = ""
    status: str = ""
    channel: str = ""
    period: str = ""
    purchases_made: int = 0
    ltv: float = 0.0
    visits: int = 0
    trial_status: str = ""
    conversion_status: str = ""
    retention_status: str = ""


@dataclass
class CheckinRecord:
    member_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    order_at: Optional[datetime] = None
    paid: float = 0.0
    payment_method_name: str = ""
    checked_in: bool = False
    complementary: bool = False
    is_late_cancelled: bool = False
    session_id: str = ""
    session_name: str = ""
    capacity: float = 0.0
    location: str = ""
    date_ist: Optional[datetime] = None
    day_of_week: str = ""
    time: str = ""
    duration_minutes: float = 0.0
    teacher_name: str = ""
    cleaned_product: str = ""
    cleaned_category: str = ""
    cleaned_class: str = ""
    host_id: str = ""
    month: str = ""
    year: float = 0.0
    class_no: float = 0.0
    is_new: str = ""


@dataclass
class RecurringSessionRecord:
    """A recurring class slot (class, day, time, location) with its rollups."""
    trainer_id: str = ""
    trainer_first_name: str = ""
    trainer_last_name: str = ""
    trainer_name: str = ""
    session_id: str = ""
    session_name: str = ""
    capacity: float = 0.0
    checked_in_count: float = 0.0
    late_cancelled_count: float = 0.0
    booked_count: float = 0.0
    complimentary_count: float = 0.0
    location: str = ""
    date: Optional[datetime] = None
    day_of_week: str = ""
    time: str = ""
    revenue: float = 0.0
    non_paid_count: float = 0.0
    unique_id_1: str = ""
    unique_id_2: str = ""
    checked_ins_with_memberships: float = 0.0
    checked_ins_with_packages: float = 0.0
    checked_ins_with_intro_offers: float = 0.0
    checked_ins_with_single_classes: float = 0.0
    class_type: str = ""
    cleaned_class: str = ""
    classes: float = 0.0
    total_sessions: float = 0.0
    empty_sessions: float = 0.0
    non_empty_sessions: float = 0.0
    total_checked_in: float = 0.0
    total_capacity: float = 0.0
    total_revenue: float = 0.0
    class_avg_incl_empty: float = 0.0
    class_avg_excl_empty: float = 0.0
    fill_rate: float = 0.0
    weighted_average: float = 0.0
    top_trainers: str = ""
    fill_percentage: float = 0.0


RECORD_TYPES = {
    "sales": SalesRecord,
    "sessions": SessionRecord,
    "new_clients": NewClientRecord,
    "payroll": PayrollRecord,
    "expirations": ExpirationRecord,
    "leads": LeadRecord,
    "checkins": CheckinRecord,
    "recurring": RecurringSessionRecord,
    "teacher_recurring": RecurringSessionRecord,
}


def record_columns(record_type: Type) -> List[str]:
    """Column names for a record type, in declaration order."""
    return [f.name for f in fields(record_type)]


def records_to_frame(records: Sequence, record_type: Type) -> pd.DataFrame:
    """Build a DataFrame from records; empty input keeps the full column set."""
    columns = record_columns(record_type)
    if not records:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([asdict(r) for r in records], columns=columns)

    for f in fields(record_type):
        if f.type in (Optional[datetime], datetime):
            df[f.name] = pd.to_datetime(df[f.name], errors="coerce")

    return df
