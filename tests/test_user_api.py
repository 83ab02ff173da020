import pytest
from datetime import date, timedelta
from httpx import AsyncClient
from unittest.mock import patch, AsyncMock

from loyalty.core.security import create_access_token, ROLE_USER, ROLE_CAISSE
from loyalty.services.legacy_card_service import LegacyCardService
from loyalty.services.cashback_service import CashbackService
from loyalty.services.setting_service import SettingService


def bearer(identity_id, role=ROLE_USER, **kwargs):
    return {"Authorization": f"Bearer {create_access_token(identity_id, role, **kwargs)}"}


@pytest.mark.api
@pytest.mark.auth
class TestTokenHandling:
    """Bearer token checks shared by every protected endpoint."""

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/v1/user/cashback-amount")

        assert response.status_code == 401
        assert response.json() == {"status": "error", "message": "Token non fourni."}
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_malformed_header(self, client: AsyncClient, test_user):
        token = create_access_token(test_user.id, ROLE_USER)
        response = await client.get("/api/v1/user/cashback-amount", headers={"Authorization": token})

        assert response.status_code == 401
        assert response.json()["message"] == "Format de token invalide."

    async def test_expired_token(self, client: AsyncClient, test_user):
        headers = bearer(test_user.id, expires_delta=timedelta(minutes=-5))
        response = await client.get("/api/v1/user/cashback-amount", headers=headers)

        assert response.status_code == 401
        assert response.json()["message"] == "TokenExpiredError"

    async def test_tampered_token(self, client: AsyncClient, user_headers):
        headers = {"Authorization": user_headers["Authorization"] + "x"}
        response = await client.get("/api/v1/user/cashback-amount", headers=headers)

        assert response.status_code == 401
        assert response.json()["message"] == "Token invalide."

    async def test_wrong_role(self, client: AsyncClient, caisse_headers):
        response = await client.get("/api/v1/user/cashback-amount", headers=caisse_headers)

        assert response.status_code == 401
        assert response.json()["message"] == "Token invalide."

    async def test_unknown_identity(self, client: AsyncClient):
        response = await client.get("/api/v1/user/cashback-amount", headers=bearer(99999))

        assert response.status_code == 404
        assert response.json()["message"] == "Utilisateur non trouvé."

    async def test_caisse_token_for_unknown_caisse(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/caisse/validate-ticket",
            json={},
            headers=bearer(99999, ROLE_CAISSE)
        )

        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.auth
class TestUserRegistrationAPI:
    """Test suite for the check, registration and login endpoints."""

    def registration(self, **overrides):
        data = {
            "phone": "060000600",
            "first_name": "Moussa",
            "last_name": "Traore",
            "birthday": "1990-05-17",
            "is_whatsapp": False,
            "password": "secret1"
        }
        data.update(overrides)
        return data

    async def test_check_legacy_card(self, client: AsyncClient):
        card = {"first_name": "Awa", "last_name": "Diallo", "amount": 7500.0}
        with patch.object(LegacyCardService, "find_by_phone", new=AsyncMock(return_value=card)):
            response = await client.post("/api/v1/user/check", json={"phone": "060000600"})

        assert response.status_code == 200
        assert response.json() == {"status": "success", "user": card}

    async def test_check_unknown_card(self, client: AsyncClient):
        with patch.object(LegacyCardService, "find_by_phone", new=AsyncMock(return_value=None)):
            response = await client.post("/api/v1/user/check", json={"phone": "060000600"})

        assert response.status_code == 404
        assert response.json()["status"] == "error"

    async def test_check_registered_phone(self, client: AsyncClient, test_user):
        response = await client.post("/api/v1/user/check", json={"phone": test_user.phone})

        assert response.status_code == 409

    async def test_check_without_phone(self, client: AsyncClient):
        response = await client.post("/api/v1/user/check", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "Veuillez fournir le numéro de portable."

    async def test_register_with_account(self, client: AsyncClient, db_session):
        response = await client.post(
            "/api/v1/user/register-with-account",
            json={
                "first_name": "Awa",
                "last_name": "Diallo",
                "amount": 7500.0,
                "phone": "060000601",
                "password": "secret1"
            }
        )

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["phone"] == "060000601"
        assert user["token"]
        assert await CashbackService(db_session).get_balance(user["id"]) == 7500.0

    async def test_register_without_account(self, client: AsyncClient):
        response = await client.post("/api/v1/user/register-without-account", json=self.registration())

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "success"
        assert data["user"]["birthday"] == "1990-05-17"
        assert data["user"]["whatsapp"] is False
        assert "hashed_password" not in data["user"]

    async def test_register_duplicate_phone(self, client: AsyncClient, test_user):
        response = await client.post(
            "/api/v1/user/register-without-account",
            json=self.registration(phone=test_user.phone)
        )

        assert response.status_code == 409

    @pytest.mark.sponsoring
    async def test_register_with_sponsor(self, client: AsyncClient, test_user, setting_rows):
        response = await client.post(
            "/api/v1/user/register-without-account",
            json=self.registration(sponsor_code="SPONSOR1")
        )
        assert response.status_code == 201

        headers = {"Authorization": f"Bearer {response.json()['user']['token']}"}
        wallet = await client.get("/api/v1/user/sponsoring-wallet", headers=headers)

        assert wallet.status_code == 200
        assert wallet.json()["amount"] == 500.0

    @pytest.mark.sponsoring
    async def test_register_with_invalid_sponsor(self, client: AsyncClient, test_user):
        response = await client.post(
            "/api/v1/user/register-without-account",
            json=self.registration(sponsor_code="UNKNOWN1")
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Le code de parrainage est incorrect."

    async def test_register_invalid_birthday(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/user/register-without-account",
            json=self.registration(birthday="not-a-date")
        )

        assert response.status_code == 400
        assert response.json() == {"status": "error", "message": "Champ invalide : birthday."}

    @pytest.mark.sponsoring
    async def test_check_sponsoring_code(self, client: AsyncClient, test_user):
        response = await client.post("/api/v1/user/check-sponsoring-code", json={"sponsoring_code": "SPONSOR1"})
        assert response.status_code == 200

        response = await client.post("/api/v1/user/check-sponsoring-code", json={"sponsoring_code": "NOBODY99"})
        assert response.status_code == 404

    async def test_login(self, client: AsyncClient, test_user):
        response = await client.post("/api/v1/user/login", json={"phone": test_user.phone, "password": "secret1"})

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["id"] == test_user.id
        assert user["cashback"] == 0.0
        assert user["token"]

    async def test_login_wrong_password(self, client: AsyncClient, test_user):
        response = await client.post("/api/v1/user/login", json={"phone": test_user.phone, "password": "wrong1"})

        assert response.status_code == 401

    async def test_list_all_requires_admin(self, client: AsyncClient, user_headers):
        response = await client.get("/api/v1/user/list-all", headers=user_headers)

        assert response.status_code == 401

    async def test_list_all(self, client: AsyncClient, test_user, admin_headers):
        response = await client.get("/api/v1/user/list-all", headers=admin_headers)

        assert response.status_code == 200
        users = response.json()["users"]
        assert [u["phone"] for u in users] == [test_user.phone]
        assert users[0]["cashback"] == 0.0


@pytest.mark.api
@pytest.mark.cashback
class TestUserCashbackAPI:
    """Test suite for the balance, threshold and transaction endpoints."""

    async def test_cashback_amount(self, client: AsyncClient, user_factory):
        user = await user_factory("060000700", "AMOUNT01", balance=320.0)

        response = await client.get("/api/v1/user/cashback-amount", headers=bearer(user.id))

        assert response.status_code == 200
        assert response.json() == {"status": "success", "cashback": 320.0}

    async def test_cashback_limit(self, client: AsyncClient, user_headers):
        response = await client.get("/api/v1/user/cashback-limit", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["cashback"] == 5000.0

    async def test_update_cashback_limit(self, client: AsyncClient, user_headers):
        response = await client.put(
            "/api/v1/user/update-cashback-limit",
            json={"amount": 7000.0},
            headers=user_headers
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Cashback mis à jour avec succès."

        response = await client.get("/api/v1/user/cashback-limit", headers=user_headers)
        assert response.json()["cashback"] == 7000.0

    async def test_update_cashback_limit_not_a_number(self, client: AsyncClient, user_headers):
        response = await client.put(
            "/api/v1/user/update-cashback-limit",
            json={"amount": "beaucoup"},
            headers=user_headers
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Champ invalide : amount."

    async def test_transactions(
        self, client: AsyncClient, db_session, test_user, test_caisse, user_headers, sample_ticket_data
    ):
        service = CashbackService(db_session)
        for number in ("T-1", "T-2"):
            await service.credit_ticket(
                caisse_id=test_caisse.id,
                user_id=test_user.id,
                **dict(sample_ticket_data, ticket_number=number)
            )

        response = await client.get("/api/v1/user/transactions", headers=user_headers)

        assert response.status_code == 200
        transactions = response.json()["transactions"]
        assert [t["ticket_number"] for t in transactions] == ["T-2", "T-1"]
        assert transactions[0]["ticket_cashback"] == 250.0

    @pytest.mark.sponsoring
    async def test_sponsoring_amount(self, client: AsyncClient, setting_rows):
        response = await client.get("/api/v1/user/sponsoring-amount")

        assert response.status_code == 200
        assert response.json()["data"] == {"godson_amount": 500.0, "godfather_amount": 1000.0}

    @pytest.mark.sponsoring
    async def test_sponsoring_wallet_empty(self, client: AsyncClient, user_headers):
        response = await client.get("/api/v1/user/sponsoring-wallet", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["amount"] == 0.0


@pytest.mark.api
@pytest.mark.voucher
class TestUserVoucherAPI:
    """Test suite for the voucher endpoints of the card holder."""

    async def test_generate_voucher_without_settings_row(self, client: AsyncClient, user_factory):
        """Without a Setting row the voucher is valid for the default 30 days."""
        user = await user_factory("060000800", "VOUCHER1", balance=6000.0)
        headers = bearer(user.id)

        response = await client.post("/api/v1/user/voucher-generate", headers=headers)

        assert response.status_code == 200
        voucher = response.json()["voucher"]
        assert voucher["amount"] == 5000.0
        assert voucher["state"] == 1
        assert voucher["expirate_date"] == (date.today() + timedelta(days=30)).isoformat()

        balance = await client.get("/api/v1/user/cashback-amount", headers=headers)
        assert balance.json()["cashback"] == 1000.0

        active = await client.get("/api/v1/user/voucher", headers=headers)
        assert active.status_code == 200
        assert active.json()["voucher"]["id"] == voucher["id"]

    async def test_generate_voucher_uses_configured_validity(
        self, client: AsyncClient, user_factory, setting_rows, db_session
    ):
        await SettingService(db_session).update_voucher_durate(10)
        user = await user_factory("060000801", "VOUCHER2", balance=5000.0)

        response = await client.post("/api/v1/user/voucher-generate", headers=bearer(user.id))

        assert response.json()["voucher"]["expirate_date"] == (date.today() + timedelta(days=10)).isoformat()

    async def test_generate_voucher_insufficient_balance(self, client: AsyncClient, user_factory):
        user = await user_factory("060000802", "VOUCHER3", balance=4999.0)

        response = await client.post("/api/v1/user/voucher-generate", headers=bearer(user.id))

        assert response.status_code == 400
        data = response.json()
        assert data["status"] == "error"
        assert data["required"] == 5000.0

    async def test_voucher_none(self, client: AsyncClient, user_headers):
        response = await client.get("/api/v1/user/voucher", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Aucun bon d'achat trouvé pour cet utilisateur."
