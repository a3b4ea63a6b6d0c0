"""
Script de suporte para destravar um pagamento aprovado que não ativou o plano.
Usage: python scripts/reconcile_payment.py <payment_id> [--activate]

O token precisa ser do dono do pagamento (o endpoint recusa outros usuários).
"""
import argparse
import os
import sys

import requests

from app.client.api_client import ApiClientError, BillingApiClient
from app.client.reconciliation import StatusSnapshot

API_BASE_URL = os.getenv("BILLING_API_URL", "http://localhost:8000")
AUTH_TOKEN = os.getenv("BILLING_API_TOKEN")


def reconcile_payment(client: BillingApiClient, payment_id: str, activate: bool) -> bool:
    print(f"Consultando pagamento {payment_id}...")
    snapshot = StatusSnapshot.from_response(client.get_payment_status(payment_id))
    print(f"  paymentApproved:     {snapshot.payment_approved}")
    print(f"  profileActivated:    {snapshot.profile_activated}")
    print(f"  subscriptionCreated: {snapshot.subscription_created}")

    if snapshot.ready:
        print("✓ Pagamento já reconciliado, nada a fazer.")
        return True
    if not snapshot.payment_approved:
        print("✗ Pagamento ainda não aprovado pela Stripe.")
        return False
    if not activate:
        print("Pagamento aprovado mas plano não ativo. Rode novamente com --activate.")
        return False

    try:
        data = client.activate_payment(payment_id)
    except ApiClientError as e:
        print(f"✗ Falha na ativação. Status: {e.status_code} ({e.code})")
        print(f"  Response: {e.message}")
        return False

    print("✓ Plano ativado!")
    print(f"  Outcome: {data.get('outcome')}")
    print(f"  Plano:   {data.get('planType')} / {data.get('subscriptionStatus')}")
    print(f"  Expira:  {data.get('expiresAt')}")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcilia um pagamento Stripe com o plano do usuário")
    parser.add_argument("payment_id", help="PaymentIntent (pi_...), checkout session (cs_...) ou assinatura (sub_...)")
    parser.add_argument("--activate", action="store_true", help="dispara a ativação manual se necessário")
    parser.add_argument("--base-url", default=API_BASE_URL)
    parser.add_argument("--token", default=AUTH_TOKEN, help="JWT do dono do pagamento (ou BILLING_API_TOKEN)")
    args = parser.parse_args()

    if not args.token:
        print("Error: informe --token ou defina BILLING_API_TOKEN.")
        print("  Obtenha um token via POST /api/v1/auth/login")
        return 1

    client = BillingApiClient(args.base_url, token=args.token)
    try:
        success = reconcile_payment(client, args.payment_id, args.activate)
    except (ApiClientError, requests.RequestException) as e:
        print(f"✗ Erro ao falar com a API: {e}")
        return 1
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
