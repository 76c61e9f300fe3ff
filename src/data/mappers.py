"""
Row-to-record mapping for every sheet.

Most tabs are mapped by fixed column index; the Sales tab is mapped by header
name because its column order has drifted over time and several columns go by
more than one name.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.data.parsing import (
    cell,
    days_between,
    month_key,
    normalise_rate,
    parse_bool,
    parse_date_value,
    parse_numeric_value,
    parse_strict_number,
    safe_get,
)
from src.data.records import (
    CheckinRecord,
    ExpirationRecord,
    LeadRecord,
    NewClientRecord,
    PayrollRecord,
    RecurringSessionRecord,
    SalesRecord,
    SessionRecord,
)

logger = logging.getLogger(__name__)

# Earliest lead date considered valid
LEADS_MIN_YEAR = 2020


# =============================================================================
# SALES (header driven)
# =============================================================================

SALES_COLUMN_ALIASES = {
    "member_id": ["Member ID", "memberId"],
    "customer_name": ["Customer Name", "customerName"],
    "customer_email": ["Customer Email", "customerEmail"],
    "sale_item_id": ["Sale Item ID", "saleItemId"],
    "payment_category": ["Payment Category", "paymentCategory"],
    "membership_type": ["Membership Type", "membershipType"],
    "payment_date": ["Payment Date", "paymentDate"],
    "payment_value": ["Payment Value", "paymentValue"],
    "paid_in_money_credits": ["Paid in Money Credits", "Paid In Money Credits", "paidInMoneyCredits"],
    "payment_vat": ["Payment VAT", "paymentVAT"],
    "payment_item": ["Payment Item", "paymentItem"],
    "payment_status": ["Payment Status", "paymentStatus"],
    "payment_method": ["Payment Method", "paymentMethod"],
    "payment_transaction_id": ["Payment Transaction ID", "paymentTransactionId"],
    "stripe_token": ["Stripe Token", "stripeToken"],
    "sold_by": ["Sold By", "soldBy"],
    "sale_reference": ["Sale Reference", "saleReference"],
    "calculated_location": ["Calculated Location", "calculatedLocation"],
    "cleaned_product": ["Cleaned Product", "cleanedProduct"],
    "cleaned_category": ["Cleaned Category", "cleanedCategory"],
    "mrp_pre_tax": ["Mrp - Pre Tax", "MRP Pre Tax", "MRP_Pre_Tax", "mrpPreTax", "MrpPreTax", "Pre Tax MRP"],
    "mrp_post_tax": ["Mrp - Post Tax", "MRP Post Tax", "MRP_Post_Tax", "mrpPostTax", "MrpPostTax", "Post Tax MRP"],
    "discount_amount": [
        "Discount Amount -Mrp- Payment Value", "Discount Amount", "discount_amount",
        "discountAmount", "DiscountAmount", "Discount_Amount", "Total Discount",
    ],
    "discount_percentage": [
        "Discount Percentage - discount amount/mrp*100", "Discount Percentage",
        "discount_percentage", "discountPercentage", "DiscountPercentage",
        "Discount_Percentage", "Discount %", "Discount_Percent",
    ],
    "host_id": ["Host Id", "Host ID", "hostId"],
    "sec_membership_start_date": ["Sec. Membership Start Date", "Sec Membership Start Date"],
    "sec_membership_end_date": ["Sec. Membership End Date", "Sec Membership End Date"],
    "sec_membership_total_classes": ["Sec. Membership Total Classes"],
    "sec_membership_classes_left": ["Sec. Membership Classes Left"],
    "sec_membership_used_sessions": ["Sec. Total Used Sessions", "Sec. Membership Used Sessions"],
    "sec_membership_is_frozen": ["Sec. Membership Is Freezed", "Sec. Membership Is Frozen", "secMembershipIsFreezed"],
}

_SALES_NUMERIC = {
    "payment_value", "paid_in_money_credits", "payment_vat", "mrp_pre_tax", "mrp_post_tax",
    "discount_amount", "discount_percentage", "sec_membership_total_classes",
    "sec_membership_classes_left", "sec_membership_used_sessions",
}
_SALES_DATES = {"payment_date", "sec_membership_start_date", "sec_membership_end_date"}
_SALES_FLAGS = {"sec_membership_is_frozen"}


def build_header_index(headers: Sequence[Any]) -> Dict[str, int]:
    """Map each header (trimmed) to its first column position."""
    index: Dict[str, int] = {}
    for position, header in enumerate(headers or []):
        name = str(header).strip()
        if name and name not in index:
            index[name] = position
    return index


def _aliased_value(row: Sequence[Any], header_index: Dict[str, int], aliases: List[str]) -> Any:
    """First non-empty cell among the aliases present in the header."""
    for alias in aliases:
        position = header_index.get(alias)
        if position is None:
            continue
        value = cell(row, position)
        if value not in (None, ""):
            return value
    return None


def apply_discount_fallbacks(record: SalesRecord) -> SalesRecord:
    """
    Fill in discount amount / percentage when the sheet leaves them blank.

    MRP is the post-tax MRP when positive, else the pre-tax MRP. Amounts and
    percentages are rounded to 2 decimals.
    """
    mrp = record.mrp_post_tax if record.mrp_post_tax > 0 else record.mrp_pre_tax
    payment = record.payment_value

    if record.discount_amount <= 0 and mrp > 0 and payment > 0 and mrp > payment:
        record.discount_amount = mrp - payment

    if record.discount_amount <= 0 and record.discount_percentage > 0 and mrp > 0:
        record.discount_amount = mrp * record.discount_percentage / 100

    if record.discount_percentage <= 0:
        if mrp > 0 and record.discount_amount > 0:
            record.discount_percentage = record.discount_amount / mrp * 100
        elif mrp > 0 and payment > 0 and mrp > payment:
            record.discount_percentage = (mrp - payment) / mrp * 100
        elif record.discount_amount > 0 and payment > 0:
            effective_mrp = payment + record.discount_amount
            record.discount_percentage = record.discount_amount / effective_mrp * 100

    record.discount_amount = round(record.discount_amount, 2)
    record.discount_percentage = round(record.discount_percentage, 2)
    return record


def map_sales_row(row: Sequence[Any], header_index: Dict[str, int]) -> SalesRecord:
    """Map a Sales row using the header positions."""
    values: Dict[str, Any] = {}
    for field_name, aliases in SALES_COLUMN_ALIASES.items():
        raw = _aliased_value(row, header_index, aliases)
        if field_name in _SALES_NUMERIC:
            values[field_name] = parse_numeric_value(raw)
        elif field_name in _SALES_DATES:
            values[field_name] = parse_date_value(raw)
        elif field_name in _SALES_FLAGS:
            values[field_name] = parse_bool(raw)
        else:
            values[field_name] = "" if raw is None else str(raw).strip()

    record = SalesRecord(**values)
    record.gross_revenue = record.payment_value
    record.net_revenue = record.payment_value - record.payment_vat
    return apply_discount_fallbacks(record)


# =============================================================================
# FIXED-INDEX SHEETS
# =============================================================================

def map_session_row(row: Sequence[Any]) -> SessionRecord:
    """Map a Sessions row (columns A..Z)."""
    capacity = parse_numeric_value(cell(row, 6))
    checked_in = parse_numeric_value(cell(row, 7))
    total_paid = parse_numeric_value(cell(row, 15))

    return SessionRecord(
        trainer_id=safe_get(row, 0),
        trainer_first_name=safe_get(row, 1),
        trainer_last_name=safe_get(row, 2),
        trainer_name=safe_get(row, 3),
        session_id=safe_get(row, 4),
        session_name=safe_get(row, 5),
        capacity=capacity,
        checked_in_count=checked_in,
        late_cancelled_count=parse_numeric_value(cell(row, 8)),
        booked_count=parse_numeric_value(cell(row, 9)),
        complimentary_count=parse_numeric_value(cell(row, 10)),
        location=safe_get(row, 11),
        date=parse_date_value(cell(row, 12)),
        day_of_week=safe_get(row, 13),
        time=safe_get(row, 14),
        total_paid=total_paid,
        non_paid_count=parse_numeric_value(cell(row, 16)),
        unique_id_1=safe_get(row, 17),
        unique_id_2=safe_get(row, 18),
        checked_ins_with_memberships=parse_numeric_value(cell(row, 19)),
        checked_ins_with_packages=parse_numeric_value(cell(row, 20)),
        checked_ins_with_intro_offers=parse_numeric_value(cell(row, 21)),
        checked_ins_with_single_classes=parse_numeric_value(cell(row, 22)),
        class_type=safe_get(row, 23),
        cleaned_class=safe_get(row, 24),
        classes=parse_numeric_value(cell(row, 25)),
        fill_percentage=checked_in / capacity * 100 if capacity > 0 else 0.0,
        revenue=total_paid,
    )


def map_new_client_row(row: Sequence[Any]) -> NewClientRecord:
    """
    Map a row of the `New` tab.

    0 Member Id, 1 First Name, 2 Last Name, 3 Email, 4 Phone Number,
    5 First Visit Date, 6 First Visit Entity Name, 7 First Visit Type,
    8 First Visit Location, 9 Payment Method, 10 Membership Used,
    11 Home Location, 12 Class No, 13 Trainer Name, 14 Is New,
    15 Visits Post Trial, 16 Memberships Bought Post Trial,
    17 Purchase Count Post Trial, 18 Ltv, 19 Retention Status,
    20 Conversion Status, 21 First Purchase Date, 22 No of Visits,
    23 Conversion Span (Days), 24 Month Year
    """
    first_visit = parse_date_value(cell(row, 5))
    first_purchase = parse_date_value(cell(row, 21))

    sheet_span = parse_numeric_value(cell(row, 23))
    conversion_span = sheet_span if sheet_span else float(days_between(first_visit, first_purchase))

    visits_cell = cell(row, 22)
    no_of_visits = parse_numeric_value(visits_cell) if visits_cell not in (None, "") else None

    return NewClientRecord(
        member_id=safe_get(row, 0),
        first_name=safe_get(row, 1),
        last_name=safe_get(row, 2),
        email=safe_get(row, 3),
        phone_number=safe_get(row, 4),
        first_visit_date=first_visit,
        first_visit_entity_name=safe_get(row, 6),
        first_visit_type=safe_get(row, 7),
        first_visit_location=safe_get(row, 8),
        payment_method=safe_get(row, 9),
        membership_used=safe_get(row, 10),
        home_location=safe_get(row, 11),
        class_no=parse_numeric_value(cell(row, 12)),
        trainer_name=safe_get(row, 13),
        is_new=safe_get(row, 14),
        visits_post_trial=parse_numeric_value(cell(row, 15)),
        memberships_bought_post_trial=safe_get(row, 16),
        purchase_count_post_trial=parse_numeric_value(cell(row, 17)),
        ltv=parse_numeric_value(cell(row, 18)),
        retention_status=safe_get(row, 19),
        conversion_status=safe_get(row, 20),
        first_purchase=first_purchase,
        no_of_visits=no_of_visits,
        conversion_span=conversion_span,
        month_year=safe_get(row, 24) or month_key(first_visit),
    )


def map_payroll_row(row: Sequence[Any]) -> PayrollRecord:
    """Map a Payroll row; per-format blocks are cycle, strength, barre, total."""
    n = [parse_numeric_value(cell(row, i)) for i in range(31)]

    total_sessions = n[19]
    total_non_empty = n[21]
    total_customers = n[22]
    month_year = safe_get(row, 24)

    return PayrollRecord(
        teacher_id=safe_get(row, 0),
        teacher_name=safe_get(row, 1),
        teacher_email=safe_get(row, 2),
        location=safe_get(row, 3),
        cycle_sessions=n[4],
        empty_cycle_sessions=n[5],
        non_empty_cycle_sessions=n[6],
        cycle_customers=n[7],
        cycle_paid=n[8],
        strength_sessions=n[9],
        empty_strength_sessions=n[10],
        non_empty_strength_sessions=n[11],
        strength_customers=n[12],
        strength_paid=n[13],
        barre_sessions=n[14],
        empty_barre_sessions=n[15],
        non_empty_barre_sessions=n[16],
        barre_customers=n[17],
        barre_paid=n[18],
        total_sessions=total_sessions,
        total_empty_sessions=n[20],
        total_non_empty_sessions=total_non_empty,
        total_customers=total_customers,
        total_paid=n[23],
        month_year=month_year,
        month_start=parse_date_value(cell(row, 24)),
        unique=safe_get(row, 25),
        converted=n[26],
        conversion_rate=normalise_rate(n[27]),
        retained=n[28],
        retention_rate=normalise_rate(n[29]),
        new_members=n[30],
        class_average_incl_empty=total_customers / total_sessions if total_sessions > 0 else 0.0,
        class_average_excl_empty=total_customers / total_non_empty if total_non_empty > 0 else 0.0,
    )


def map_expiration_row(row: Sequence[Any]) -> ExpirationRecord:
    """Map an Expirations row (columns A..P)."""
    return ExpirationRecord(
        unique_id=safe_get(row, 0),
        member_id=safe_get(row, 1),
        first_name=safe_get(row, 2),
        last_name=safe_get(row, 3),
        email=safe_get(row, 4),
        membership_name=safe_get(row, 5),
        end_date=parse_date_value(cell(row, 6)),
        home_location=safe_get(row, 7),
        current_usage=safe_get(row, 8, "-"),
        id=safe_get(row, 9),
        order_at=parse_date_value(cell(row, 10)),
        sold_by=safe_get(row, 11, "-"),
        membership_id=safe_get(row, 12, "-"),
        frozen=parse_bool(cell(row, 13)),
        paid=parse_numeric_value(cell(row, 14)),
        status=safe_get(row, 15),
    )


def parse_lead_date(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """Lead dates outside [2020, now] are treated as missing."""
    parsed = parse_date_value(value)
    if parsed is None:
        return None
    now = now or datetime.now()
    if parsed > now or parsed.year < LEADS_MIN_YEAR:
        return None
    return parsed


def map_lead_row(row: Sequence[Any], now: Optional[datetime] = None) -> LeadRecord:
    """Map a row of the Leads tab (columns A..AF)."""
    return LeadRecord(
        id=safe_get(row, 0),
        full_name=safe_get(row, 1),
        phone=safe_get(row, 2),
        email=safe_get(row, 3),
        created_at=parse_lead_date(cell(row, 4), now),
        source_id=safe_get(row, 5),
        source=safe_get(row, 6),
        member_id=safe_get(row, 7),
        converted_to_customer_at=parse_lead_date(cell(row, 8), now),
        stage=safe_get(row, 9),
        associate=safe_get(row, 10),
        remarks=safe_get(row, 11),
        follow_up_1_date=parse_lead_date(cell(row, 12), now),
        follow_up_comments_1=safe_get(row, 13),
        follow_up_2_date=parse_lead_date(cell(row, 14), now),
        follow_up_comments_2=safe_get(row, 15),
        follow_up_3_date=parse_lead_date(cell(row, 16), now),
        follow_up_comments_3=safe_get(row, 17),
        follow_up_4_date=parse_lead_date(cell(row, 18), now),
        follow_up_comments_4=safe_get(row, 19),
        center=safe_get(row, 20),
        class_type=safe_get(row, 21),
        host_id=safe_get(row, 22),
        status=safe_get(row, 23),
        channel=safe_get(row, 24),
        period=safe_get(row, 25),
        purchases_made=int(parse_strict_number(safe_get(row, 26))),
        ltv=parse_strict_number(safe_get(row, 27)),
        visits=int(parse_strict_number(safe_get(row, 28))),
        trial_status=safe_get(row, 29),
        conversion_status=safe_get(row, 30),
        retention_status=safe_get(row, 31),
    )


def map_checkin_row(row: Sequence[Any]) -> CheckinRecord:
    """Map a Checkins row (columns A..AA)."""
    return CheckinRecord(
        member_id=safe_get(row, 0),
        first_name=safe_get(row, 1),
        last_name=safe_get(row, 2),
        email=safe_get(row, 3),
        order_at=parse_date_value(cell(row, 4)),
        paid=parse_numeric_value(cell(row, 5)),
        payment_method_name=safe_get(row, 6),
        checked_in=parse_bool(cell(row, 7)),
        complementary=parse_bool(cell(row, 8)),
        is_late_cancelled=parse_bool(cell(row, 9)),
        session_id=safe_get(row, 10),
        session_name=safe_get(row, 11),
        capacity=parse_numeric_value(cell(row, 12)),
        location=safe_get(row, 13),
        date_ist=parse_date_value(cell(row, 14)),
        day_of_week=safe_get(row, 15),
        time=safe_get(row, 16),
        duration_minutes=parse_numeric_value(cell(row, 17)),
        teacher_name=safe_get(row, 18),
        cleaned_product=safe_get(row, 19),
        cleaned_category=safe_get(row, 20),
        cleaned_class=safe_get(row, 21),
        host_id=safe_get(row, 22),
        month=safe_get(row, 23),
        year=parse_numeric_value(cell(row, 24)),
        class_no=parse_numeric_value(cell(row, 25)),
        is_new=safe_get(row, 26),
    )


def map_recurring_row(row: Sequence[Any]) -> RecurringSessionRecord:
    """
    Map a Recurring / Teacher Recurring row.

    Columns A..Z follow the Sessions layout; AA..AK hold the per-slot rollups
    (totals, empty sessions, class averages, fill rate as '72%', weighted
    average and, on Recurring only, the top trainers).
    """
    capacity = parse_numeric_value(cell(row, 6))
    checked_in = parse_numeric_value(cell(row, 7))

    return RecurringSessionRecord(
        trainer_id=safe_get(row, 0),
        trainer_first_name=safe_get(row, 1),
        trainer_last_name=safe_get(row, 2),
        trainer_name=safe_get(row, 3),
        session_id=safe_get(row, 4),
        session_name=safe_get(row, 5),
        capacity=capacity,
        checked_in_count=checked_in,
        late_cancelled_count=parse_numeric_value(cell(row, 8)),
        booked_count=parse_numeric_value(cell(row, 9)),
        complimentary_count=parse_numeric_value(cell(row, 10)),
        location=safe_get(row, 11),
        date=parse_date_value(cell(row, 12)),
        day_of_week=safe_get(row, 13),
        time=safe_get(row, 14),
        revenue=parse_numeric_value(cell(row, 15)),
        non_paid_count=parse_numeric_value(cell(row, 16)),
        unique_id_1=safe_get(row, 17),
        unique_id_2=safe_get(row, 18),
        checked_ins_with_memberships=parse_numeric_value(cell(row, 19)),
        checked_ins_with_packages=parse_numeric_value(cell(row, 20)),
        checked_ins_with_intro_offers=parse_numeric_value(cell(row, 21)),
        checked_ins_with_single_classes=parse_numeric_value(cell(row, 22)),
        class_type=safe_get(row, 23),
        cleaned_class=safe_get(row, 24),
        classes=parse_numeric_value(cell(row, 25)),
        total_sessions=parse_numeric_value(cell(row, 26)),
        empty_sessions=parse_numeric_value(cell(row, 27)),
        non_empty_sessions=parse_numeric_value(cell(row, 28)),
        total_checked_in=parse_numeric_value(cell(row, 29)),
        total_capacity=parse_numeric_value(cell(row, 30)),
        total_revenue=parse_numeric_value(cell(row, 31)),
        class_avg_incl_empty=parse_numeric_value(cell(row, 32)),
        class_avg_excl_empty=parse_numeric_value(cell(row, 33)),
        fill_rate=parse_numeric_value(cell(row, 34)),
        weighted_average=parse_numeric_value(cell(row, 35)),
        top_trainers=safe_get(row, 36),
        fill_percentage=checked_in / capacity * 100 if capacity > 0 else 0.0,
    )


ROW_MAPPERS: Dict[str, Callable[[Sequence[Any]], Any]] = {
    "sessions": map_session_row,
    "new_clients": map_new_client_row,
    "payroll": map_payroll_row,
    "expirations": map_expiration_row,
    "leads": map_lead_row,
    "checkins": map_checkin_row,
    "recurring": map_recurring_row,
    "teacher_recurring": map_recurring_row,
}


def _is_blank(row: Sequence[Any]) -> bool:
    return not row or all(value in (None, "") for value in row)


def map_sheet_rows(entity: str, rows: List[List[Any]]) -> List[Any]:
    """
    Map raw sheet values (header row first) to records for `entity`.

    Returns an empty list when the sheet holds fewer than two rows. Blank rows
    are skipped; rows that fail to map are logged and dropped.
    """
    if not rows or len(rows) < 2:
        return []

    headers, body = rows[0], rows[1:]

    if entity == "sales":
        header_index = build_header_index(headers)

        def mapper(row):
            return map_sales_row(row, header_index)
    elif entity in ROW_MAPPERS:
        mapper = ROW_MAPPERS[entity]
    else:
        raise KeyError(f"No row mapper for entity '{entity}'")

    records = []
    for position, row in enumerate(body, start=2):
        if _is_blank(row):
            continue
        try:
            records.append(mapper(row))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping %s row %d: %s", entity, position, exc)

    logger.debug("Mapped %d %s records from %d rows", len(records), entity, len(body))
    return records
