import pytest
from rest_framework import status

from tables.models import Table
from tables.services import TableRegistry
from tickets.exceptions import BusinessError, BusinessRule, NotFoundError, ValidationError


@pytest.mark.django_db
class TestTableRegistry:
    """Table occupancy gateway"""

    def test_get_and_state(self, table):
        registry = TableRegistry()
        assert registry.get(table.pk) == table
        assert registry.get_state(table.pk) == Table.TableState.FREE

    def test_unknown_table(self, db):
        with pytest.raises(NotFoundError):
            TableRegistry().get(404)
        with pytest.raises(NotFoundError):
            TableRegistry().get("not-a-number")

    def test_set_state_tracks_occupied_since(self, table):
        registry = TableRegistry()

        registry.set_state(table, Table.TableState.OCCUPIED)
        table.refresh_from_db()
        assert table.occupied_since is not None

        registry.set_state(table.pk, Table.TableState.FREE)
        table.refresh_from_db()
        assert table.occupied_since is None

    def test_set_state_rejects_unknown(self, table):
        with pytest.raises(ValidationError):
            TableRegistry().set_state(table, "BROKEN")

    def test_take_out_of_service(self, table):
        TableRegistry().set_availability(table.pk, Table.TableState.OUT_OF_SERVICE)
        table.refresh_from_db()
        assert table.state == Table.TableState.OUT_OF_SERVICE

        TableRegistry().set_availability(table.pk, Table.TableState.FREE)
        table.refresh_from_db()
        assert table.state == Table.TableState.FREE

    def test_occupied_table_cannot_be_toggled(self, open_ticket, table):
        """
        Business Impact: a seated table cannot be closed for service under a party
        """
        with pytest.raises(BusinessError) as excinfo:
            TableRegistry().set_availability(table.pk, Table.TableState.OUT_OF_SERVICE)
        assert excinfo.value.rule == BusinessRule.TABLE_UNAVAILABLE

    def test_occupied_cannot_be_set_by_hand(self, table):
        with pytest.raises(ValidationError):
            TableRegistry().set_availability(table.pk, Table.TableState.OCCUPIED)


@pytest.mark.django_db
class TestTableEndpoints:
    def test_list_with_open_ticket_count(self, authenticated_client, open_ticket, second_table):
        response = authenticated_client.get("/api/tables/")

        assert response.status_code == status.HTTP_200_OK
        rows = {row["number"]: row for row in response.data["results"]}
        assert rows[1]["state"] == "OCCUPIED"
        assert rows[1]["open_tickets"] == 1
        assert rows[2]["state"] == "FREE"
        assert rows[2]["open_tickets"] == 0

    def test_filter_by_state(self, authenticated_client, open_ticket, second_table):
        response = authenticated_client.get("/api/tables/", {"state": "FREE"})
        assert [row["number"] for row in response.data["results"]] == [2]

    def test_create_table(self, authenticated_client):
        response = authenticated_client.post(
            "/api/tables/", {"number": 12, "name": "Terrace", "seats": 6, "state": "OCCUPIED"}, format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        # State is read-only on the resource.
        assert response.data["state"] == "FREE"

    def test_state_action(self, authenticated_client, table):
        response = authenticated_client.post(
            f"/api/tables/{table.pk}/state/", {"state": "OUT_OF_SERVICE"}, format="json"
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data["state"] == "OUT_OF_SERVICE"

    def test_state_action_on_occupied_table(self, authenticated_client, open_ticket, table):
        response = authenticated_client.post(
            f"/api/tables/{table.pk}/state/", {"state": "OUT_OF_SERVICE"}, format="json"
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data["rule"] == "TABLE_UNAVAILABLE"
