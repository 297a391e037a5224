"""Mercado Pago API Client for checkout preferences and payment lookups."""
import logging
from typing import Dict, Any, List, Optional

import requests
from flask import Flask, current_app

from ferremas.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class MercadoPagoClient:
    """Cliente para interactuar con la API de Mercado Pago."""

    BASE_URL = "https://api.mercadopago.com"

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 10,
        sandbox: bool = True,
        notification_url: Optional[str] = None,
        back_urls: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Mercado Pago client.

        Args:
            access_token: MP access token. Checked at call time, not here.
            base_url: API root, defaults to the public endpoint
            timeout: seconds per request (connect and read)
            sandbox: prefer ``sandbox_init_point`` as redirect URL
            notification_url: webhook URL sent with each preference
            back_urls: success / failure / pending return URLs
        """
        self.access_token = access_token
        self.base_url = (base_url or self.BASE_URL).rstrip('/')
        self.timeout = timeout
        self.sandbox = sandbox
        self.notification_url = notification_url
        self.back_urls = {k: v for k, v in (back_urls or {}).items() if v}

    @property
    def headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json'
        }

    def _request(self, method: str, path: str, action: str, **kwargs) -> requests.Response:
        """Send a request; every transport or HTTP failure becomes UpstreamError."""
        if not self.access_token:
            logger.error("[MP] MP_ACCESS_TOKEN is not configured")
            raise UpstreamError('Mercado Pago no está configurado')

        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response

        except requests.Timeout:
            logger.error(f"[MP] Timeout {action} ({self.timeout}s)")
            raise UpstreamError('Mercado Pago no respondió a tiempo')
        except requests.HTTPError as e:
            logger.error(f"[MP] Error {action}: {e.response.status_code} {e.response.text}")
            raise UpstreamError(
                f'Error de Mercado Pago al {action}',
                payload={'gateway_status': e.response.status_code},
            )
        except requests.RequestException as e:
            logger.error(f"[MP] Connection error {action}: {str(e)}")
            raise UpstreamError('No se pudo conectar con Mercado Pago')

    def create_preference(
        self,
        items: List[Dict[str, Any]],
        external_reference: str,
        payer_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Crear preferencia de pago (Checkout Pro).

        Args:
            items: Lista de items (title, quantity, unit_price, currency_id)
            external_reference: Referencia interna del pago, devuelta en cada pago
            payer_email: Email del pagador
            metadata: Datos adicionales guardados por MP

        Returns:
            Dict con id, init_point y sandbox_init_point

        Raises:
            UpstreamError: Si la API de MP falla o no responde
        """
        payload = {
            "items": items,
            "external_reference": str(external_reference),
        }
        if payer_email:
            payload["payer"] = {"email": payer_email}
        if self.back_urls:
            payload["back_urls"] = self.back_urls
            if self.back_urls.get('success'):
                payload["auto_return"] = "approved"
        if self.notification_url:
            payload["notification_url"] = self.notification_url
        if metadata:
            payload["metadata"] = metadata

        logger.info(f"[MP] Creating preference for {external_reference}")

        data = self._request('POST', '/checkout/preferences', 'crear preferencia', json=payload).json()

        logger.info(f"[MP] Preference created: {data.get('id')} - ref: {external_reference}")
        return data

    def checkout_url(self, preference: Dict[str, Any]) -> Optional[str]:
        """Redirect URL of a preference (sandbox or production)."""
        if self.sandbox and preference.get('sandbox_init_point'):
            return preference['sandbox_init_point']
        return preference.get('init_point') or preference.get('sandbox_init_point')

    def get_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        """
        Consultar un pago por ID.

        Returns:
            Dict con datos del pago, o None si MP no lo conoce (404)
        """
        logger.info(f"[MP] Getting payment: {payment_id}")

        try:
            data = self._request('GET', f'/v1/payments/{payment_id}', 'obtener pago').json()
        except UpstreamError as e:
            if (e.payload or {}).get('gateway_status') == 404:
                logger.warning(f"[MP] Payment not found: {payment_id}")
                return None
            raise

        logger.info(f"[MP] Payment status: {data.get('status')} - {payment_id}")
        return data

    def search_payments(self, external_reference: str) -> List[Dict[str, Any]]:
        """Buscar pagos por referencia externa, más recientes primero."""
        logger.info(f"[MP] Searching payments for {external_reference}")

        params = {
            'external_reference': str(external_reference),
            'sort': 'date_created',
            'criteria': 'desc',
        }
        data = self._request('GET', '/v1/payments/search', 'buscar pagos', params=params).json()
        return data.get('results', [])

    def refund_payment(self, payment_id: str, amount: Optional[float] = None) -> Dict[str, Any]:
        """Reembolsar un pago, total o parcial."""
        payload = {}
        if amount:
            payload['amount'] = amount

        logger.info(f"[MP] Refunding payment {payment_id} amount={amount or 'total'}")

        data = self._request(
            'POST', f'/v1/payments/{payment_id}/refunds', 'procesar reembolso', json=payload
        ).json()

        logger.info(f"[MP] Refund {data.get('id')} created for payment {payment_id}")
        return data


def init_gateway(app: Flask) -> MercadoPagoClient:
    """Build the gateway client from config and register it on the app."""
    client = MercadoPagoClient(
        access_token=app.config.get('MP_ACCESS_TOKEN'),
        base_url=app.config.get('MP_BASE_URL'),
        timeout=app.config.get('MP_TIMEOUT', 10),
        sandbox=app.config.get('MP_SANDBOX', True),
        notification_url=app.config.get('MP_NOTIFICATION_URL'),
        back_urls={
            'success': app.config.get('MP_SUCCESS_URL'),
            'failure': app.config.get('MP_FAILURE_URL'),
            'pending': app.config.get('MP_PENDING_URL'),
        },
    )
    app.extensions['gateway'] = client
    if not client.access_token:
        logger.warning("[MP] MP_ACCESS_TOKEN not set, checkout calls will fail")
    return client


def get_gateway_client():
    """Gateway client of the current app."""
    return current_app.extensions['gateway']
