def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert 'error' in body
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_internal_error_shape(client, auth_headers, monkeypatch):
    import farmdash.routes.iam as iam_mod

    class BoomSession:
        def query(self, *a, **k):
            raise RuntimeError('explode')

    monkeypatch.setattr(iam_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/iam/users', headers=auth_headers('Admin'))
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'


def test_healthz(client):
    assert client.get('/healthz').get_json() == {'status': 'ok'}
