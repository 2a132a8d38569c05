"""
Tests — Authentication, inactivity policy and member administration.

Covers:
    - login / logout / me / profile / password change
    - expired and idle sessions → 401 "Session expirée"
    - InactivityPolicy with an injected clock
    - presidence-only member administration
"""

import pytest

from memberdesk.core.exceptions import ConflictError, ValidationError
from memberdesk.services import member_service
from memberdesk.services.session_policy import InactivityPolicy
from memberdesk.utils.crypto import verify_password


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ── InactivityPolicy ─────────────────────────────────────────────────────


class TestInactivityPolicy:
    def test_activity_resets_the_timer(self):
        clock = FakeClock()
        policy = InactivityPolicy(timeout_seconds=60, clock=clock)
        policy.start("s1", 7)
        clock.advance(50)
        assert policy.check("s1", 7) is True
        clock.advance(50)
        assert policy.check("s1", 7) is True

    def test_idle_session_expires_once(self):
        clock = FakeClock()
        expired = []
        policy = InactivityPolicy(timeout_seconds=60, clock=clock, on_timeout=expired.append)
        policy.start("s1", 7)
        clock.advance(61)
        assert policy.check("s1", 7) is False
        assert policy.check("s1", 7) is False
        assert expired == [7]

    def test_unknown_session_is_adopted(self):
        policy = InactivityPolicy(timeout_seconds=60, clock=FakeClock())
        assert policy.check("restarted", 3) is True
        assert policy.active_sessions == 1

    def test_end_and_restart(self):
        policy = InactivityPolicy(timeout_seconds=60, clock=FakeClock())
        policy.start("s1", 7)
        policy.end("s1")
        assert policy.check("s1", 7) is False
        policy.start("s1", 7)
        assert policy.check("s1", 7) is True

    def test_sweep(self):
        clock = FakeClock()
        expired = []
        policy = InactivityPolicy(timeout_seconds=60, clock=clock, on_timeout=expired.append)
        policy.start("old", 1)
        clock.advance(40)
        policy.start("recent", 2)
        clock.advance(30)
        assert policy.sweep() == [1]
        assert expired == [1]
        assert policy.active_sessions == 1

    def test_ended_sessions_are_forgotten_after_retention(self):
        clock = FakeClock()
        policy = InactivityPolicy(timeout_seconds=60, clock=clock, retention_seconds=600)
        for i in range(10_000):
            policy.start(f"s{i}", 7)
            policy.end(f"s{i}")
        assert policy.retained_expired == 10_000
        clock.advance(601)
        assert policy.sweep() == []
        assert policy.retained_expired == 0
        assert policy.active_sessions == 0

    def test_ended_session_stays_refused_within_retention(self):
        clock = FakeClock()
        policy = InactivityPolicy(timeout_seconds=60, clock=clock, retention_seconds=600)
        policy.start("s1", 7)
        policy.end("s1")
        clock.advance(500)
        assert policy.check("s1", 7) is False
        assert policy.retained_expired == 1

    def test_timed_out_sessions_are_pruned(self):
        clock = FakeClock()
        policy = InactivityPolicy(timeout_seconds=60, clock=clock, retention_seconds=600)
        policy.start("old", 1)
        clock.advance(61)
        assert policy.sweep() == [1]
        assert policy.retained_expired == 1
        clock.advance(601)
        policy.check("other", 2)
        assert policy.retained_expired == 0

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            InactivityPolicy(timeout_seconds=0)


# ── Login & session ──────────────────────────────────────────────────────


class TestLogin:
    def test_login_success(self, client, member, password):
        res = client.post("/api/v1/auth/login", json={"email": "LEA@capisen.fr ", "password": password})
        assert res.status_code == 200
        body = res.get_json()
        assert body["token_type"] == "Bearer"
        assert body["member"]["email"] == "lea@capisen.fr"

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.get_json()["full_name"] == "Léa Martin"

    @pytest.mark.parametrize("body", [
        {"email": "lea@capisen.fr", "password": "mauvais"},
        {"email": "personne@capisen.fr", "password": "motdepasse123"},
        {"email": "lea@capisen.fr"},
        {},
    ])
    def test_login_refused(self, client, member, body):
        res = client.post("/api/v1/auth/login", json=body)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Email ou mot de passe incorrect."

    def test_inactive_member_refused(self, client, member, password):
        member_service.update_member(member.id, {"is_active": False})
        res = client.post("/api/v1/auth/login", json={"email": member.email, "password": password})
        assert res.status_code == 401

    def test_me_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_garbage_token(self, client):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401

    def test_logout_ends_session(self, client, member, auth_headers):
        headers = auth_headers(member)
        assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
        res = client.get("/api/v1/auth/me", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Session expirée"

    def test_expired_token(self, app, client, member, auth_headers, monkeypatch):
        monkeypatch.setitem(app.config, "JWT_ACCESS_EXPIRES", -10)
        headers = auth_headers(member)
        res = client.get("/api/v1/auth/me", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Session expirée"
        assert res.get_json()["code"] == "ERR_SESSION_EXPIRED"

    def test_idle_session_rejected(self, app, client, member, auth_headers):
        clock = FakeClock()
        app.extensions["inactivity_policy"] = InactivityPolicy(timeout_seconds=3600, clock=clock)
        headers = auth_headers(member)

        clock.advance(3000)
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
        clock.advance(3000)
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
        clock.advance(3601)
        res = client.get("/api/v1/auth/me", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Session expirée"

    def test_deactivated_member_loses_access(self, client, member, auth_headers):
        headers = auth_headers(member)
        member_service.update_member(member.id, {"is_active": False})
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


# ── Profile & password ───────────────────────────────────────────────────


class TestProfile:
    def test_update_profile(self, client, member, auth_headers):
        res = client.put("/api/v1/auth/profile",
                         json={"full_name": " Léa M. ", "avatar_url": "https://img/lea.png"},
                         headers=auth_headers(member))
        assert res.status_code == 200
        assert res.get_json()["full_name"] == "Léa M."
        assert res.get_json()["avatar_url"] == "https://img/lea.png"

    def test_full_name_required(self, client, member, auth_headers):
        res = client.put("/api/v1/auth/profile", json={"full_name": "  "}, headers=auth_headers(member))
        assert res.status_code == 400

    def test_change_password(self, client, member, auth_headers, password):
        res = client.post("/api/v1/auth/password", json={
            "old_password": password,
            "new_password": "nouveau-secret",
            "confirm_password": "nouveau-secret",
        }, headers=auth_headers(member))
        assert res.status_code == 200
        assert verify_password("nouveau-secret", member.password_hash)

    @pytest.mark.parametrize("old, new, confirm, message", [
        ("faux", "court", "court", member_service.PASSWORD_TOO_SHORT_MESSAGE),
        ("faux", "assez-long-1", "assez-long-2", member_service.PASSWORD_MISMATCH_MESSAGE),
        ("faux", "assez-long-1", "assez-long-1", member_service.WRONG_PASSWORD_MESSAGE),
    ])
    def test_password_rules_in_order(self, member, old, new, confirm, message):
        with pytest.raises(ValidationError) as exc:
            member_service.change_password(member, old, new, confirm)
        assert exc.value.message == message


# ── Member administration ────────────────────────────────────────────────


class TestMemberAdmin:
    def test_presidence_updates_member(self, client, presidence, member, auth_headers):
        res = client.put(f"/api/v1/members/{member.id}", json={"role": "responsable", "pole": "qualite"},
                         headers=auth_headers(presidence))
        assert res.status_code == 200
        assert (res.get_json()["role"], res.get_json()["pole"]) == ("responsable", "qualite")

    def test_responsable_cannot_update(self, client, responsable, member, auth_headers):
        res = client.put(f"/api/v1/members/{member.id}", json={"role": "presidence"},
                         headers=auth_headers(responsable))
        assert res.status_code == 403

    def test_unknown_role(self, client, presidence, member, auth_headers):
        res = client.put(f"/api/v1/members/{member.id}", json={"role": "admin"},
                         headers=auth_headers(presidence))
        assert res.status_code == 400

    def test_list_members(self, client, member, responsable, presidence, auth_headers):
        res = client.get("/api/v1/members?pole=etude", headers=auth_headers(member))
        body = res.get_json()
        assert body["total"] == 2
        assert {m["email"] for m in body["members"]} == {"lea@capisen.fr", "resp@capisen.fr"}
        res = client.get("/api/v1/members?q=prez", headers=auth_headers(member))
        assert [m["email"] for m in res.get_json()["members"]] == ["pres@capisen.fr"]

    def test_create_member_duplicate(self, member):
        with pytest.raises(ConflictError):
            member_service.create_member(email="Lea@Capisen.fr", password="motdepasse", full_name="Doublon")

    def test_create_member(self):
        created = member_service.create_member(email=" New@Capisen.fr", password="motdepasse",
                                               full_name="Nouveau", role="normal", pole="qualite")
        assert created.email == "new@capisen.fr"
        assert member_service.authenticate("new@capisen.fr", "motdepasse") is created

    @pytest.mark.parametrize("email", ["not-an-email", "jean..dupont@capisen.fr", "lea@", ""])
    def test_create_member_invalid_email(self, email):
        with pytest.raises(ValidationError):
            member_service.create_member(email=email, password="motdepasse", full_name="X")


# ── Self-service sign-up ─────────────────────────────────────────────────


SIGNUP = {
    "email": "Nina.Dev@Capisen.fr",
    "password": "motdepasse123",
    "confirm_password": "motdepasse123",
    "full_name": "Nina Dev",
    "pole": "communication",
}


class TestSignup:
    def test_signup_opens_a_session(self, client):
        res = client.post("/api/v1/auth/signup", json=SIGNUP)
        assert res.status_code == 201
        body = res.get_json()
        assert body["member"]["email"] == "nina.dev@capisen.fr"
        assert body["member"]["role"] == "normal"
        assert body["member"]["pole"] == "communication"

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert member_service.authenticate("nina.dev@capisen.fr", "motdepasse123") is not None

    def test_role_cannot_be_chosen(self, client):
        res = client.post("/api/v1/auth/signup", json={**SIGNUP, "role": "presidence"})
        assert res.status_code == 201
        assert res.get_json()["member"]["role"] == "normal"

    def test_duplicate_email(self, client, member):
        res = client.post("/api/v1/auth/signup", json={**SIGNUP, "email": "LEA@capisen.fr"})
        assert res.status_code == 409
        assert res.get_json()["error"] == "Cette adresse e-mail est déjà utilisée."

    @pytest.mark.parametrize("override,message", [
        ({"email": "nina@gmail.com"}, "Seules les adresses @capisen.fr sont autorisées."),
        ({"email": "nina@capisen.fr.evil.com"}, "Seules les adresses @capisen.fr sont autorisées."),
        ({"email": "nina@@capisen.fr"}, "Adresse email invalide."),
        ({"confirm_password": "autrechose123"}, "Les mots de passe ne correspondent pas."),
        ({"password": "court", "confirm_password": "court"},
         "Le mot de passe doit contenir au moins 8 caractères."),
        ({"full_name": "  "}, "Le nom complet est requis."),
        ({"pole": "marketing"}, "Pôle inconnu."),
        ({"pole": ["etude"]}, "Pôle inconnu."),
    ])
    def test_rules(self, client, override, message):
        res = client.post("/api/v1/auth/signup", json={**SIGNUP, **override})
        assert res.status_code == 400
        assert res.get_json()["error"] == message
        assert member_service.find_by_email("nina.dev@capisen.fr") is None

    def test_stale_token_does_not_block_signup(self, client):
        res = client.post("/api/v1/auth/signup", json=SIGNUP,
                          headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 201
