from utils.form_rules import apply_field_change, FIELD_INVALIDATION_RULES


def test_changing_lens_order_clears_payment():
    state = {'lens_order_id': '1', 'payment_id': '10', 'reason': 'Entrega completa'}
    new_state = apply_field_change(state, 'lens_order_id', '2')
    assert new_state == {'lens_order_id': '2', 'payment_id': '', 'reason': 'Entrega completa'}
    assert state['payment_id'] == '10'


def test_same_value_keeps_payment():
    state = {'lens_order_id': '1', 'payment_id': '10'}
    assert apply_field_change(state, 'lens_order_id', 1)['payment_id'] == '10'


def test_fields_without_rules_only_set_themselves():
    state = {'lens_order_id': '1', 'payment_id': '10', 'reason': ''}
    assert apply_field_change(state, 'reason', 'Cliente ausente') == {
        'lens_order_id': '1', 'payment_id': '10', 'reason': 'Cliente ausente'}


def test_switching_payment_option_clears_payment_fields():
    state = {'payment_option': 'existing', 'payment_id': '10', 'new_payment_folio': 'V001',
             'new_payment_amount': '50'}
    new_state = apply_field_change(state, 'payment_option', 'new')
    for dependent in FIELD_INVALIDATION_RULES['payment_option']:
        assert new_state[dependent] == ''
