def _floor(fee: float | None) -> float:
    if fee is None or fee < 0:
        return 0.0
    return float(fee)


def allocate_delivery_fees(vendor_ids: list[int],
                           delivery_fee: float | None,
                           fee_by_vendor: dict[int, float] | None = None) -> dict[int, float]:
    """
    Decide the delivery fee each vendor order is charged.

    Rules, in order of precedence:
    1. An entry in fee_by_vendor is used for its vendor, even when it is 0
    2. Otherwise the aggregate delivery_fee is split evenly across vendor_ids
    3. Negative amounts anywhere are floored at 0

    With no vendors the result is empty; with one vendor that vendor gets the
    whole aggregate fee.

    Args:
        vendor_ids: Distinct vendors being checked out
        delivery_fee: Aggregate fee for the whole checkout
        fee_by_vendor: Optional explicit per-vendor fees

    Returns:
        Mapping vendor_id -> fee rounded to 2 decimals
    """
    fee_by_vendor = fee_by_vendor or {}
    base = _floor(delivery_fee)
    per_vendor = base / len(vendor_ids) if len(vendor_ids) > 0 else base

    allocation = {}
    for vendor_id in vendor_ids:
        if vendor_id in fee_by_vendor:
            allocation[vendor_id] = round(_floor(fee_by_vendor[vendor_id]), 2)
        else:
            allocation[vendor_id] = round(per_vendor, 2)
    return allocation
