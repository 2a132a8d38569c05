"""
Tests — POST /api/v1/generate-mail.
"""

import pytest

from memberdesk.models import db
from memberdesk.models.ai import AIUsageLog

URL = "/api/v1/generate-mail"


def _initial_body(**overrides):
    body = {
        "contact": {"full_name": "Jane Doe", "company": "Acme"},
        "contentType": "mail_client",
        "template": {"title": "Prise de contact"},
        "offres": [],
        "context": "",
    }
    body.update(overrides)
    return body


@pytest.fixture()
def headers(member, auth_headers):
    return auth_headers(member)


class TestGenerateMail:
    def test_requires_login(self, client, fake_llm):
        res = client.post(URL, json=_initial_body())
        assert res.status_code == 401
        assert fake_llm.calls == []

    def test_initial_generation(self, client, headers, fake_llm):
        fake_llm.replies = ["Objet : Bonjour Jane"]
        res = client.post(URL, json=_initial_body(), headers=headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["mail"] == "Objet : Bonjour Jane"
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
        assert "Jane Doe" in data["messages"][0]["content"]

    def test_sender_defaults_to_current_member(self, client, headers, fake_llm):
        client.post(URL, json=_initial_body(), headers=headers)
        prompt = fake_llm.calls[0]["messages"][0]["content"]
        assert "- Nom : Léa Martin" in prompt
        assert "- Pôle : Étude" in prompt

    def test_refinement(self, client, headers, fake_llm):
        first = client.post(URL, json=_initial_body(), headers=headers).get_json()
        fake_llm.replies = ["Objet : court"]
        res = client.post(URL, json={"messages": first["messages"], "refinement": "plus court"},
                          headers=headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["mail"] == "Objet : court"
        assert len(data["messages"]) == 4

    def test_missing_template(self, client, headers, fake_llm):
        res = client.post(URL, json=_initial_body(template=None), headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Contact et template sont requis."
        assert fake_llm.calls == []

    def test_missing_contact(self, client, headers, fake_llm):
        body = _initial_body()
        del body["contact"]
        res = client.post(URL, json=body, headers=headers)
        assert res.status_code == 400

    def test_post_needs_no_contact(self, client, headers, fake_llm):
        body = _initial_body(contentType="linkedin_post")
        del body["contact"]
        assert client.post(URL, json=body, headers=headers).status_code == 200

    def test_empty_refinement(self, client, headers, fake_llm):
        messages = [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]
        res = client.post(URL, json={"messages": messages, "refinement": "  "}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Message de raffinement manquant."
        assert fake_llm.calls == []

    def test_recipient_names_instead_of_objects(self, client, headers, fake_llm):
        body = _initial_body(contacts=["Jane Doe"])
        del body["contact"]
        res = client.post(URL, json=body, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Destinataires invalides."
        assert fake_llm.calls == []

    def test_contacts_as_object(self, client, headers, fake_llm):
        body = _initial_body(contacts={"full_name": "Jane Doe"})
        res = client.post(URL, json=body, headers=headers)
        assert res.status_code == 400
        assert fake_llm.calls == []

    def test_contact_as_string(self, client, headers, fake_llm):
        res = client.post(URL, json=_initial_body(contact="Jane Doe"), headers=headers)
        assert res.status_code == 400
        assert fake_llm.calls == []

    def test_body_not_an_object(self, client, headers, fake_llm):
        res = client.post(URL, json=["x"], headers=headers)
        assert res.status_code == 400
        assert fake_llm.calls == []

    def test_upstream_error_message_surfaced(self, client, headers, fake_llm, upstream_error):
        fake_llm.error = upstream_error
        res = client.post(URL, json=_initial_body(), headers=headers)
        assert res.status_code == 500
        assert res.get_json()["error"] == "Overloaded"
        # The failed call is still accounted for
        assert db.session.query(AIUsageLog).filter_by(success=False).count() == 1

    def test_missing_api_key(self, app, client, headers):
        res = client.post(URL, json=_initial_body(), headers=headers)
        assert res.status_code == 500
        assert res.get_json()["error"] == "Clé API Anthropic non configurée."

    def test_get_not_allowed(self, client, headers):
        res = client.get(URL, headers=headers)
        assert res.status_code == 405
        assert res.get_json()["error"] == "Method not allowed"

    def test_options_preflight(self, client):
        res = client.options(URL, headers={
            "Origin": "https://capisen.fr",
            "Access-Control-Request-Method": "POST",
        })
        assert res.status_code == 200
