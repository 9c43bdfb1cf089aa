from datetime import date

import pytest

from app import db, Anuncio, Plano


@pytest.fixture
def colecao(client, headers):
    return client.post('/collections', headers=headers, json={'name': 'Centro'}).get_json()


def url_anuncios(colecao):
    return f"/collections/{colecao['id']}/listings"


def test_criar_anuncio(client, headers, colecao):
    response = client.post(url_anuncios(colecao), headers=headers, json={'data': {
        'titulo': ' Apto 3 quartos ', 'endereco': 'Rua das Flores, 10', 'preco': 850000, 'piscina': True,
    }})
    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['titulo'] == 'Apto 3 quartos'
    assert data['adicionado_em'] == date.today().isoformat()
    assert data['piscina'] is True


def test_criar_anuncio_exige_titulo_e_endereco(client, headers, colecao):
    sem_endereco = client.post(url_anuncios(colecao), headers=headers, json={'data': {'titulo': 'Apto'}})
    assert sem_endereco.status_code == 400
    assert sem_endereco.get_json()['detalhes'] == {'campo': 'endereco'}
    sem_dados = client.post(url_anuncios(colecao), headers=headers, json={})
    assert sem_dados.status_code == 400
    titulo_vazio = client.post(url_anuncios(colecao), headers=headers,
                               json={'data': {'titulo': '  ', 'endereco': 'Rua'}})
    assert titulo_vazio.status_code == 400


def test_mantem_adicionado_em_informado(client, headers, colecao):
    response = client.post(url_anuncios(colecao), headers=headers, json={'data': {
        'titulo': 'Casa', 'endereco': 'Rua', 'adicionado_em': '2024-05-01'}})
    assert response.get_json()['data']['adicionado_em'] == '2024-05-01'


def test_listar_anuncios_mais_antigos_primeiro(client, headers, colecao):
    for titulo in ('Primeiro', 'Segundo'):
        client.post(url_anuncios(colecao), headers=headers, json={'data': {'titulo': titulo, 'endereco': 'Rua'}})
    titulos = [a['data']['titulo'] for a in client.get(url_anuncios(colecao), headers=headers).get_json()]
    assert titulos == ['Primeiro', 'Segundo']


def test_atualizar_mescla_documento(client, headers, colecao):
    anuncio = client.post(url_anuncios(colecao), headers=headers, json={'data': {
        'titulo': 'Casa', 'endereco': 'Rua', 'preco': 500000}}).get_json()
    url = f"{url_anuncios(colecao)}/{anuncio['id']}"
    response = client.put(url, headers=headers, json={'data': {'favorito': True, 'preco': 480000}})
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data == {**anuncio['data'], 'favorito': True, 'preco': 480000}
    assert db.session.get(Anuncio, anuncio['id']).data['favorito'] is True

    vazio = client.put(url, headers=headers, json={'data': {}})
    assert vazio.status_code == 400
    assert vazio.get_json()['erro'] == 'Dados de atualização são obrigatórios'
    assert client.put(url, headers=headers, json={'data': {'titulo': ''}}).status_code == 400


def test_anuncio_de_outra_colecao(client, headers, colecao):
    outra = client.post('/collections', headers=headers, json={'name': 'Outra'}).get_json()
    anuncio = client.post(url_anuncios(outra), headers=headers,
                          json={'data': {'titulo': 'Casa', 'endereco': 'Rua'}}).get_json()
    assert client.get(f"{url_anuncios(colecao)}/{anuncio['id']}", headers=headers).status_code == 404
    assert client.get(f"{url_anuncios(outra)}/{anuncio['id']}", headers=headers).status_code == 200


def test_excluir_anuncio(client, headers, colecao):
    anuncio = client.post(url_anuncios(colecao), headers=headers,
                          json={'data': {'titulo': 'Casa', 'endereco': 'Rua'}}).get_json()
    url = f"{url_anuncios(colecao)}/{anuncio['id']}"
    assert client.delete(url, headers=headers).status_code == 200
    assert client.get(url, headers=headers).status_code == 404


def test_rotas_por_id_do_anuncio(client, headers, colecao, criar_usuario, auth):
    anuncio = client.post(url_anuncios(colecao), headers=headers,
                          json={'data': {'titulo': 'Casa', 'endereco': 'Rua'}}).get_json()
    url = f"/listings/{anuncio['id']}"
    assert client.get(url, headers=headers).get_json()['collection_id'] == colecao['id']
    atualizado = client.put(url, headers=headers, json={'data': {'visitado': True}}).get_json()
    assert atualizado['data']['visitado'] is True

    outro = auth(criar_usuario(email='outro@teste.com'))
    assert client.get(url, headers=outro).status_code == 404
    assert client.delete(url, headers=outro).status_code == 404

    assert client.delete(url, headers=headers).status_code == 200
    assert client.get(url, headers=headers).status_code == 404


def test_membro_da_organizacao_nao_edita(client, usuario, headers, criar_usuario, auth, criar_organizacao,
                                         adicionar_membro):
    dono = criar_usuario(email='dono@teste.com')
    org = criar_organizacao(dono)
    adicionar_membro(org, usuario, 'member')
    colecao = client.post('/collections', headers=auth(dono), json={'name': 'Org', 'org_id': org.id}).get_json()
    anuncio = client.post(url_anuncios(colecao), headers=auth(dono),
                          json={'data': {'titulo': 'Casa', 'endereco': 'Rua'}}).get_json()

    assert client.get(url_anuncios(colecao), headers=headers).status_code == 200
    assert client.post(url_anuncios(colecao), headers=headers,
                       json={'data': {'titulo': 'X', 'endereco': 'Y'}}).status_code == 403
    assert client.delete(f"/listings/{anuncio['id']}", headers=headers).status_code == 403


def test_limite_de_anuncios_por_colecao(client, usuario, headers, colecao):
    plano = Plano.query.filter_by(slug='plus').first()
    plano.limits = {**plano.limits, 'listings_per_collection': 1}
    db.session.commit()

    assert client.post(url_anuncios(colecao), headers=headers,
                       json={'data': {'titulo': 'A', 'endereco': 'Rua'}}).status_code == 201
    response = client.post(url_anuncios(colecao), headers=headers, json={'data': {'titulo': 'B', 'endereco': 'Rua'}})
    assert response.status_code == 403
    assert response.get_json()['detalhes']['limite'] == 'listings_per_collection'
