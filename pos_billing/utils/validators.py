# utils/validators.py

# ---- Numeric parsing ----

def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)

    ok == False means parsing failed and value is None. Blank strings and
    NaN/inf count as failures; a tendered amount of "" is not zero.
    """
    if x is None:
        return False, None
    if isinstance(x, str):
        x = x.strip().replace(",", "")
        if not x:
            return False, None
    try:
        val = float(x)
    except (TypeError, ValueError):
        return False, None
    if val != val or val in (float("inf"), float("-inf")):
        return False, None
    return True, val
