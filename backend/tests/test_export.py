# backend/tests/test_export.py
import csv
import io
from datetime import date, datetime

from vehicle_rental.core.export import USER_HEADERS, csv_response, rows_to_csv, user_row


def test_rows_to_csv_formats_cells():
    text = rows_to_csv(["A", "B", "C", "D"], [[datetime(2030, 1, 2, 3, 4), True, None, "x,y"]])

    rows = list(csv.reader(io.StringIO(text)))
    assert rows == [["A", "B", "C", "D"], ["2030-01-02T03:04:00", "yes", "", "x,y"]]


def test_csv_response_headers():
    response = csv_response("users", USER_HEADERS, [], today=date(2030, 6, 1))

    assert response.media_type.startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="users_2030-06-01.csv"'
    assert response.body.decode().strip() == ",".join(USER_HEADERS)


def test_user_row_defaults():
    row = user_row({"id": "u1", "name": "Asha", "email": "asha@example.com", "phone": "9876543210", "role": "user"})

    assert row[:5] == ["u1", "Asha", "asha@example.com", "9876543210", "user"]
    assert row[5] is True
    assert row[6] is False
