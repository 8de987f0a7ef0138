def test_read_main(client):
    response = client.get("/")
    assert response.status_code == 200
    # Đảm bảo nội dung này khớp với main.py
    assert response.json() == {"message": "Welcome to the School Scheduler API! Visit /docs for API documentation."}


def test_domain_errors_are_mapped_to_structured_payload(client):
    response = client.get("/api/v1/classes/999")
    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["rule"] == "not_found"
    assert detail["class_id"] == 999
