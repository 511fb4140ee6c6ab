"""
Input forms for the JSON API.

Forms are plain wtforms.Form instances fed with the parsed JSON body
(`Form(data=payload)`) or with request.args for query strings.
"""
from wtforms import Form, IntegerField, StringField
from wtforms.validators import DataRequired, NumberRange, Length, AnyOf, Optional

from jewelry.models import OrderStatus


class PriceQueryForm(Form):
    """Query string of the pricing endpoint."""

    variant_id = IntegerField('Variant', validators=[Optional()])
    quantity = IntegerField(
        'Quantity',
        validators=[Optional(), NumberRange(min=1, message='Quantity must be at least 1')],
        default=1
    )
    customer_id = IntegerField('Customer', validators=[Optional()])


class QuotationLineForm(Form):
    product_id = IntegerField('Product', validators=[DataRequired(message='product_id is required')])
    product_variant_id = IntegerField('Variant')
    quantity = IntegerField(
        'Quantity',
        validators=[NumberRange(min=1, message='Quantity must be at least 1')],
        default=1
    )


class QuotationCreateForm(Form):
    customer_id = IntegerField('Customer', validators=[DataRequired(message='customer_id is required')])
    notes = StringField('Notes', validators=[Length(max=2000)])


class AdminNotesForm(Form):
    """Body of approve / reject."""

    admin_notes = StringField('Admin notes', validators=[Length(max=2000)])


class RequestConfirmationForm(Form):
    notes = StringField('Notes', validators=[Length(max=2000)])
    quantity = IntegerField('Quantity')
    product_variant_id = IntegerField('Variant')


class CustomerResponseForm(Form):
    """Body carrying only the acting customer: confirm, decline, checkout payment."""

    customer_id = IntegerField('Customer', validators=[DataRequired(message='customer_id is required')])


class GroupItemForm(Form):
    """Body of add-item and update-product on a quotation group."""

    product_id = IntegerField('Product', validators=[DataRequired(message='product_id is required')])
    product_variant_id = IntegerField('Variant')
    quantity = IntegerField('Quantity')
    quotation_id = IntegerField('Quotation')
    admin_notes = StringField('Admin notes', validators=[Length(max=2000)])


class OrderStatusForm(Form):
    status = StringField(
        'Status',
        validators=[
            DataRequired(message='status is required'),
            AnyOf(OrderStatus.values(), message='Unknown order status')
        ]
    )
    actor_id = IntegerField('Actor')
    actor_kind = StringField(
        'Actor kind',
        validators=[AnyOf(['admin', 'customer'], message='actor_kind must be admin or customer')],
        default='admin'
    )


class CheckoutForm(Form):
    """Body of checkout: {customer_id, lines: [...]}; lines use QuotationLineForm."""

    customer_id = IntegerField('Customer', validators=[DataRequired(message='customer_id is required')])


class CheckoutFinalizeForm(Form):
    provider_reference = StringField(
        'Provider reference',
        validators=[DataRequired(message='provider_reference is required'), Length(max=128)]
    )
    customer_id = IntegerField('Customer')
