"""
Dependent-field invalidation for the delivery form.
Changing a field clears every field listed for it below.
"""

FIELD_INVALIDATION_RULES = {
    # Payments are filtered by the lens order's folio.
    'lens_order_id': ('payment_id',),
    'payment_option': ('payment_id', 'new_payment_folio', 'new_payment_amount'),
}


def _normalize(value):
    return '' if value is None else str(value)


def apply_field_change(form_state, field, value):
    """Return a new form state with ``field`` set and its dependents cleared.

    Dependents are only cleared when the value actually changed.
    """
    new_state = dict(form_state)
    changed = _normalize(form_state.get(field)) != _normalize(value)
    new_state[field] = value
    if changed:
        for dependent in FIELD_INVALIDATION_RULES.get(field, ()):
            new_state[dependent] = ''
    return new_state
