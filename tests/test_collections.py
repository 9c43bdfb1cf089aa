from app import db, Colecao, Anuncio, Plano


def criar(client, headers, name, **extra):
    return client.post('/collections', headers=headers, json={'name': name, **extra})


def test_primeira_colecao_vira_padrao(client, headers):
    primeira = criar(client, headers, 'Centro')
    segunda = criar(client, headers, 'Praia')
    assert primeira.status_code == 201
    assert primeira.get_json()['is_default'] is True
    assert segunda.get_json()['is_default'] is False


def test_nova_padrao_desmarca_anterior(client, headers):
    primeira = criar(client, headers, 'Centro').get_json()
    segunda = criar(client, headers, 'Praia', is_default=True).get_json()
    assert segunda['is_default'] is True
    assert db.session.get(Colecao, primeira['id']).is_default is False


def test_nome_obrigatorio(client, headers):
    assert criar(client, headers, '   ').status_code == 400
    assert client.post('/collections', headers=headers, json={}).status_code == 400


def test_listar_em_ordem_de_criacao(client, headers):
    for nome in ('A', 'B', 'C'):
        criar(client, headers, nome)
    nomes = [c['name'] for c in client.get('/collections', headers=headers).get_json()]
    assert nomes == ['A', 'B', 'C']


def test_limite_de_colecoes_do_plano(client, criar_usuario, auth):
    headers = auth(criar_usuario(plano='teste'))
    for nome in ('A', 'B', 'C'):
        assert criar(client, headers, nome).status_code == 201
    response = criar(client, headers, 'D')
    assert response.status_code == 403
    assert response.get_json()['detalhes']['limite'] == 'collections_limit'


def test_colecao_de_outro_usuario_nao_aparece(client, headers, criar_usuario, auth):
    colecao = criar(client, headers, 'Minha').get_json()
    outro = auth(criar_usuario(email='outro@teste.com'))
    assert client.get(f"/collections/{colecao['id']}", headers=outro).status_code == 404
    assert client.get('/collections', headers=outro).get_json() == []


def test_obter_colecao_com_contagem(client, headers):
    colecao = criar(client, headers, 'Minha').get_json()
    client.post(f"/collections/{colecao['id']}/listings", headers=headers,
                json={'data': {'titulo': 'Apto', 'endereco': 'Rua 1'}})
    body = client.get(f"/collections/{colecao['id']}", headers=headers).get_json()
    assert body['listings_count'] == 1
    assert body['user_role'] is None


def test_atualizar_colecao(client, headers):
    colecao = criar(client, headers, 'Minha').get_json()
    url = f"/collections/{colecao['id']}"
    response = client.put(url, headers=headers, json={'name': ' Nova ', 'is_public': True})
    assert response.status_code == 200
    assert response.get_json()['name'] == 'Nova'
    assert response.get_json()['is_public'] is True

    assert client.put(url, headers=headers, json={'name': ''}).status_code == 400
    vazio = client.put(url, headers=headers, json={'cor': 'azul'})
    assert vazio.status_code == 400
    assert vazio.get_json()['erro'] == 'Nenhum campo válido para atualizar'


def test_nao_exclui_unica_padrao(client, headers):
    colecao = criar(client, headers, 'Única').get_json()
    assert client.delete(f"/collections/{colecao['id']}", headers=headers).status_code == 400


def test_excluir_padrao_promove_mais_antiga(client, headers):
    primeira = criar(client, headers, 'A').get_json()
    segunda = criar(client, headers, 'B').get_json()
    terceira = criar(client, headers, 'C').get_json()
    client.post(f"/collections/{primeira['id']}/listings", headers=headers,
                json={'data': {'titulo': 'Apto', 'endereco': 'Rua 1'}})

    assert client.delete(f"/collections/{primeira['id']}", headers=headers).status_code == 200
    assert db.session.get(Colecao, primeira['id']) is None
    assert Anuncio.query.count() == 0
    assert db.session.get(Colecao, segunda['id']).is_default is True
    assert db.session.get(Colecao, terceira['id']).is_default is False


def test_copiar_colecao(client, headers):
    origem = criar(client, headers, 'Origem').get_json()
    for i in range(2):
        client.post(f"/collections/{origem['id']}/listings", headers=headers,
                    json={'data': {'titulo': f'Apto {i}', 'endereco': 'Rua 1'}})
    client.put(f"/collections/{origem['id']}", headers=headers, json={'is_public': True})

    response = client.post(f"/collections/{origem['id']}/copy", headers=headers, json={})
    assert response.status_code == 201
    body = response.get_json()
    assert body['copied_listings_count'] == 2
    assert body['collection']['name'] == 'Origem (cópia)'
    assert body['collection']['is_public'] is False
    assert body['collection']['is_default'] is False

    sem_anuncios = client.post(f"/collections/{origem['id']}/copy", headers=headers,
                               json={'new_name': 'Vazia', 'include_listings': False}).get_json()
    assert sem_anuncios['collection']['name'] == 'Vazia'
    assert sem_anuncios['copied_listings_count'] == 0


def test_copiar_para_organizacao_exige_gestor(client, usuario, headers, criar_usuario, criar_organizacao,
                                              adicionar_membro):
    origem = criar(client, headers, 'Origem').get_json()
    dono = criar_usuario(email='dono@teste.com')
    org = criar_organizacao(dono)
    membro = adicionar_membro(org, usuario, 'member')
    negado = client.post(f"/collections/{origem['id']}/copy", headers=headers, json={'target_org_id': org.id})
    assert negado.status_code == 403

    membro.role = 'admin'
    db.session.commit()
    ok = client.post(f"/collections/{origem['id']}/copy", headers=headers, json={'target_org_id': org.id})
    assert ok.status_code == 201
    assert ok.get_json()['collection']['org_id'] == org.id


def test_compartilhar_colecao(client, headers):
    colecao = criar(client, headers, 'Minha').get_json()
    url = f"/collections/{colecao['id']}/share"
    assert client.get(url, headers=headers).get_json()['is_shared'] is False

    response = client.post(url, headers=headers)
    assert response.status_code == 200
    token = response.get_json()['share_token']
    assert len(token) == 16 and token.isalnum()
    assert response.get_json()['share_url'] == f'https://anuncios.test/anuncios?share={token}'
    assert client.post(url, headers=headers).get_json()['share_token'] == token

    status = client.get(url, headers=headers).get_json()
    assert status['is_shared'] is True

    assert client.delete(url, headers=headers).status_code == 200
    colecao_db = db.session.get(Colecao, colecao['id'])
    assert colecao_db.share_token is None
    assert colecao_db.is_public is False


def test_plano_sem_compartilhamento(client, criar_usuario, auth):
    headers = auth(criar_usuario(plano='teste'))
    colecao = criar(client, headers, 'Minha').get_json()
    assert client.post(f"/collections/{colecao['id']}/share", headers=headers).status_code == 403


def test_colecao_de_organizacao(client, usuario, headers, criar_usuario, auth, criar_organizacao, adicionar_membro):
    dono = criar_usuario(email='dono@teste.com')
    dono_headers = auth(dono)
    org = criar_organizacao(dono)
    adicionar_membro(org, usuario, 'member')

    criada = client.post('/collections', headers=dono_headers, json={'name': 'Da Org', 'org_id': org.id})
    assert criada.status_code == 201
    colecao = criada.get_json()
    assert colecao['org_id'] == org.id
    assert colecao['user_id'] is None
    assert colecao['is_default'] is True

    # membro lê, mas não edita nem cria
    assert client.get(f"/collections/{colecao['id']}", headers=headers).get_json()['user_role'] == 'member'
    assert client.put(f"/collections/{colecao['id']}", headers=headers, json={'name': 'X'}).status_code == 403
    assert client.put(f"/collections/{colecao['id']}", headers=headers, json={'name': ''}).status_code == 403
    assert client.post('/collections', headers=headers, json={'name': 'Y', 'org_id': org.id}).status_code == 403

    listadas = client.get(f'/collections?org_id={org.id}', headers=headers).get_json()
    assert [c['id'] for c in listadas] == [colecao['id']]
    assert client.get('/collections', headers=headers).get_json() == []

    estranho = auth(criar_usuario(email='estranho@teste.com'))
    assert client.get(f"/collections/{colecao['id']}", headers=estranho).status_code == 404
    assert client.get(f'/collections?org_id={org.id}', headers=estranho).status_code == 403


def test_exportar_pdf(client, headers):
    colecao = criar(client, headers, 'Minha').get_json()
    client.post(f"/collections/{colecao['id']}/listings", headers=headers, json={'data': {
        'titulo': 'Apto vista mar', 'endereco': 'Av. Beira Mar, 100', 'm2_privado': 120, 'preco': 1500000,
        'quartos': 3, 'garagem': 2,
    }})
    response = client.get(f"/collections/{colecao['id']}/exportar-pdf", headers=headers)
    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')


def test_plano_ilimitado(client, headers):
    plano = Plano.query.filter_by(slug='plus').first()
    assert plano.limits['collections_limit'] is None
    for i in range(5):
        assert criar(client, headers, f'C{i}').status_code == 201
