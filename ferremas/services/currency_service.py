"""
Exchange rate service.
Rates are CLP per unit of currency, cached for a TTL with a fallback table.
"""
import logging
import time
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Optional

import requests
from flask import Flask, current_app

from ferremas.database import utcnow
from ferremas.exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

BASE_CURRENCY = 'CLP'

CURRENCY_INFO = {
    'CLP': {'name': 'Peso Chileno', 'symbol': '$'},
    'USD': {'name': 'Dólar Estadounidense', 'symbol': 'US$'},
    'EUR': {'name': 'Euro', 'symbol': '€'},
    'BRL': {'name': 'Real Brasileño', 'symbol': 'R$'},
    'ARS': {'name': 'Peso Argentino', 'symbol': 'AR$'},
    'PEN': {'name': 'Sol Peruano', 'symbol': 'S/'},
}

# Banco Central de Chile series (CLP per unit)
BCN_SERIES = {
    'USD': 'F073.TCO.PRE.Z.D',
    'EUR': 'F072.CLP.EUR.N.O.D',
}


class BancoCentralClient:
    """Fetch today's observed rates from the Banco Central de Chile API."""

    def __init__(self, api_url: str, user: Optional[str], password: Optional[str], timeout: float = 10):
        self.api_url = api_url
        self.user = user
        self.password = password
        self.timeout = timeout

    @staticmethod
    def _last_observation(data: Dict[str, Any]) -> Optional[Decimal]:
        series = (data or {}).get('Series')
        if isinstance(series, list):
            series = series[0] if series else None
        observations = (series or {}).get('Obs') or []
        for obs in reversed(observations):
            if obs.get('statusCode', 'OK') != 'OK':
                continue
            try:
                return Decimal(str(obs.get('value')).replace(',', '.'))
            except InvalidOperation:
                continue
        return None

    def __call__(self) -> Optional[Dict[str, Decimal]]:
        if not self.user or not self.password:
            logger.warning("[FX] Banco Central credentials not configured, using fallback rates")
            return None

        today = date.today().isoformat()
        rates = {}
        for code, series_id in BCN_SERIES.items():
            params = {
                'user': self.user,
                'pass': self.password,
                'function': 'GetSeries',
                'timeseries': series_id,
                'firstdate': today,
                'lastdate': today,
            }
            try:
                response = requests.get(self.api_url, params=params, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                logger.error(f"[FX] Error fetching {code} from Banco Central: {str(e)}")
                raise UpstreamError('Banco Central no disponible')

            rate = self._last_observation(response.json())
            if rate:
                rates[code] = rate

        return rates or None


class ExchangeRateService:
    """
    Currency conversion with CLP as base.

    Args:
        rates: fallback table, CLP per unit of each supported currency
        ttl: seconds a fetched table stays valid
        fetcher: callable returning fresh rates (or None); may raise UpstreamError
        clock: monotonic time source
    """

    def __init__(
        self,
        rates: Dict[str, Any],
        ttl: float = 3600,
        fetcher: Optional[Callable[[], Optional[Dict[str, Any]]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fallback_rates = {code.upper(): Decimal(str(value)) for code, value in rates.items()}
        self.fallback_rates[BASE_CURRENCY] = Decimal('1')
        self.ttl = ttl
        self.fetcher = fetcher
        self.clock = clock
        self.source = 'fallback'
        self.last_updated = None
        self._rates: Optional[Dict[str, Decimal]] = None
        self._fetched_at: Optional[float] = None

    def _fetch(self) -> Optional[Dict[str, Decimal]]:
        if not self.fetcher:
            return None
        try:
            fetched = self.fetcher()
        except UpstreamError as e:
            logger.warning(f"[FX] Rate fetch failed, using fallback: {e.message}")
            return None
        if not fetched:
            return None
        return {
            code.upper(): Decimal(str(value))
            for code, value in fetched.items()
            if code.upper() in self.fallback_rates and value
        }

    def get_rates(self) -> Dict[str, Decimal]:
        """Current table, refreshed when the TTL has elapsed."""
        now = self.clock()
        if self._rates is not None and now - self._fetched_at < self.ttl:
            return dict(self._rates)

        fresh = self._fetch()
        if fresh:
            self._rates = {**self.fallback_rates, **fresh}
            self.source = 'Banco Central de Chile'
        else:
            self._rates = dict(self.fallback_rates)
            self.source = 'fallback'
        self._fetched_at = now
        self.last_updated = utcnow()
        return dict(self._rates)

    def is_supported(self, code: str) -> bool:
        return bool(code) and code.upper() in self.fallback_rates

    def _check_code(self, code, field: str) -> str:
        if not code or not self.is_supported(str(code)):
            raise ValidationError(
                f"Moneda '{code}' no soportada",
                [{'field': field, 'message': f"Monedas soportadas: {', '.join(sorted(self.fallback_rates))}"}],
            )
        return str(code).upper()

    def convert(self, from_currency: str, to_currency: str, amount) -> Dict[str, Any]:
        """
        Convert ``amount`` between two supported currencies via CLP.

        Returns:
            Dict with converted_amount (2 places) and exchange_rate (4 places).

        Raises:
            ValidationError: unsupported currency or non-positive amount
        """
        source = self._check_code(from_currency, 'from')
        target = self._check_code(to_currency, 'to')
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, TypeError):
            value = None
        if value is None or not value.is_finite() or value <= 0:
            raise ValidationError('El monto debe ser un número positivo', [{'field': 'amount', 'message': 'Monto inválido'}])

        rates = self.get_rates()
        rate = Decimal('1') if source == target else rates[source] / rates[target]
        converted = (value * rate).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

        return {
            'from_currency': source,
            'to_currency': target,
            'original_amount': float(value),
            'converted_amount': float(converted),
            'exchange_rate': float(rate.quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)),
            'calculation': f'{value} {source} = {converted} {target}',
            'source': self.source,
            'timestamp': utcnow().isoformat(),
        }

    def supported_currencies(self):
        return [
            {
                'code': code,
                'name': CURRENCY_INFO.get(code, {}).get('name', code),
                'symbol': CURRENCY_INFO.get(code, {}).get('symbol', code),
                'enabled': True,
            }
            for code in self.fallback_rates
        ]

    def rates_table(self):
        rates = self.get_rates()
        return [
            {
                'currency': code,
                'name': CURRENCY_INFO.get(code, {}).get('name', code),
                'rate_to_clp': float(rate),
                'rate_from_clp': float((Decimal('1') / rate).quantize(Decimal('0.000001'))),
                'symbol': CURRENCY_INFO.get(code, {}).get('symbol', code),
            }
            for code, rate in rates.items()
        ]


def init_exchange_rates(app: Flask) -> ExchangeRateService:
    """Create the app's exchange rate service from config."""
    fetcher = BancoCentralClient(
        api_url=app.config.get('BCN_API_URL'),
        user=app.config.get('BCN_USER'),
        password=app.config.get('BCN_PASSWORD'),
        timeout=app.config.get('BCN_TIMEOUT', 10),
    )
    service = ExchangeRateService(
        rates=app.config.get('EXCHANGE_RATES_FALLBACK', {BASE_CURRENCY: '1'}),
        ttl=app.config.get('EXCHANGE_RATES_TTL', 3600),
        fetcher=fetcher,
    )
    app.extensions['exchange_rates'] = service
    return service


def get_exchange_rate_service() -> ExchangeRateService:
    return current_app.extensions['exchange_rates']
