import feature_flags
from app import db, Colecao, CompartilhamentoColecao


def colecao_com_anuncios(client, headers, nome='Vitrine', titulos=('A', 'B')):
    colecao = client.post('/collections', headers=headers, json={'name': nome}).get_json()
    for titulo in titulos:
        client.post(f"/collections/{colecao['id']}/listings", headers=headers,
                    json={'data': {'titulo': titulo, 'endereco': 'Rua'}})
    return colecao


def test_listar_colecoes_publicas(client, usuario, headers):
    publica = colecao_com_anuncios(client, headers)
    colecao_com_anuncios(client, headers, 'Privada', ())
    client.put(f"/collections/{publica['id']}", headers=headers, json={'is_public': True})

    body = client.get('/collections/public').get_json()
    assert len(body) == 1
    assert body[0]['id'] == publica['id']
    assert body[0]['owner_name'] == usuario.name
    assert body[0]['listings_count'] == 2


def test_dono_da_colecao_publica_de_organizacao(client, usuario, headers, criar_organizacao):
    org = criar_organizacao(usuario, name='Imobiliária Sol')
    colecao = client.post('/collections', headers=headers, json={'name': 'Org', 'org_id': org.id}).get_json()
    client.put(f"/collections/{colecao['id']}", headers=headers, json={'is_public': True})
    body = client.get('/collections/public').get_json()
    assert body[0]['owner_name'] == 'Imobiliária Sol'


def test_colecao_publica_por_id(client, headers):
    colecao = colecao_com_anuncios(client, headers)
    url = f"/collections/public/{colecao['id']}"
    privada = client.get(url)
    assert privada.status_code == 404
    assert privada.get_json()['erro'] == 'Coleção não encontrada ou não é pública'

    client.put(f"/collections/{colecao['id']}", headers=headers, json={'is_public': True})
    body = client.get(url).get_json()
    assert body['collection']['name'] == 'Vitrine'
    assert [a['data']['titulo'] for a in body['listings']] == ['B', 'A']


def test_flag_desligada_esconde_rotas_publicas(client):
    feature_flags.definir_overrides(public_collections=False)
    assert client.get('/collections/public').status_code == 404
    assert client.get('/shared/qualquer').status_code == 404


def test_colecao_compartilhada_por_token(client, headers):
    colecao = colecao_com_anuncios(client, headers)
    token = client.post(f"/collections/{colecao['id']}/share", headers=headers).get_json()['share_token']

    response = client.get(f'/shared/{token}')
    assert response.status_code == 200
    body = response.get_json()
    assert body['collection']['id'] == colecao['id']
    assert body['metadata']['total_listings'] == 2
    assert len(body['listings']) == 2


def test_colecao_compartilhada_despublicada(client, headers):
    colecao = colecao_com_anuncios(client, headers)
    token = client.post(f"/collections/{colecao['id']}/share", headers=headers).get_json()['share_token']
    colecao_db = db.session.get(Colecao, colecao['id'])
    colecao_db.is_public = False
    db.session.commit()
    assert client.get(f'/shared/{token}').status_code == 403
    assert client.get('/shared/inexistente').status_code == 404


# --- snapshots com senha mestre ---

SNAPSHOT = {'collection': {'label': 'Favoritos'}, 'listings': [{'titulo': 'Casa'}]}


def test_snapshot_validacoes(client):
    assert client.post('/share', json={'collection_data': SNAPSHOT}).status_code == 400
    assert client.post('/share', json={'password': 'senha-mestre'}).status_code == 400
    assert client.post('/share', json={'password': 'senha-mestre',
                                       'collection_data': {'collection': {'label': 'X'}}}).status_code == 400
    errada = client.post('/share', json={'password': 'errada', 'collection_data': SNAPSHOT})
    assert errada.status_code == 401


def test_snapshot_sem_senha_configurada(client, app):
    app.config['SHARE_MASTER_PASSWORD'] = None
    try:
        response = client.post('/share', json={'password': 'senha-mestre', 'collection_data': SNAPSHOT})
        assert response.status_code == 401
    finally:
        app.config['SHARE_MASTER_PASSWORD'] = 'senha-mestre'


def test_snapshot_criar_e_ler(client):
    response = client.post('/share', json={'password': 'senha-mestre', 'collection_data': SNAPSHOT})
    assert response.status_code == 201
    body = response.get_json()
    token = body['token']
    assert len(token) == 12
    assert body['share_url'].endswith(f'/anuncios?dbshare={token}')

    primeira = client.get(f'/share/{token}').get_json()
    assert primeira['collection_name'] == 'Favoritos'
    assert primeira['collection_data'] == SNAPSHOT
    assert primeira['accessed_count'] == 1
    assert client.get(f'/share/{token}').get_json()['accessed_count'] == 2
    assert CompartilhamentoColecao.query.count() == 1


def test_snapshot_inexistente(client):
    assert client.get('/share/naoexiste12').status_code == 404
