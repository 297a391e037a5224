"""Currency blueprint: supported currencies, rates and conversion."""
from flask import Blueprint, request

from ferremas.database import utcnow
from ferremas.exceptions import ValidationError
from ferremas.services.currency_service import BASE_CURRENCY, get_exchange_rate_service
from ferremas.utils.responses import success_response

currency_bp = Blueprint('currency', __name__, url_prefix='/api/v1/currency')


@currency_bp.route('/supported', methods=['GET'])
def supported():
    currencies = get_exchange_rate_service().supported_currencies()
    return success_response({
        'currencies': currencies,
        'total': len(currencies),
        'base_currency': BASE_CURRENCY,
    })


@currency_bp.route('/rates', methods=['GET'])
def rates():
    service = get_exchange_rate_service()
    table = service.rates_table()
    return success_response({
        'base_currency': BASE_CURRENCY,
        'rates': table,
        'total_currencies': len(table),
        'source': service.source,
        'last_updated': (service.last_updated or utcnow()).isoformat(),
    })


@currency_bp.route('/convert', methods=['GET'])
def convert():
    """Query params: from, to, amount."""
    from_currency = request.args.get('from')
    to_currency = request.args.get('to')
    amount = request.args.get('amount')
    if not from_currency or not to_currency or not amount:
        missing = [name for name, value in (('from', from_currency), ('to', to_currency), ('amount', amount)) if not value]
        raise ValidationError(
            'Parámetros requeridos: from, to, amount',
            [{'field': name, 'message': 'Campo requerido'} for name in missing],
        )

    result = get_exchange_rate_service().convert(from_currency, to_currency, amount)
    return success_response(result)
