import json

from flask import Blueprint, request, jsonify, current_app, Response, stream_with_context
from flask_jwt_extended import jwt_required, current_user

from eixo.database import get_db
from eixo.services import gateway, prompts
from eixo.utils import strip_code_fences

bp = Blueprint('ia', __name__)

MAX_ARQUIVOS = 5


@bp.route('/api/ia/painel/chat', methods=['POST'])
@jwt_required()
def api_painel_chat():
    data = request.json or {}
    messages = data.get('messages') or []
    if not messages:
        return jsonify({'error': 'Nenhuma mensagem enviada.'}), 400

    try:
        ctx = prompts.contexto_painel(get_db())
        upstream = gateway.chat_stream(
            [{'role': 'system', 'content': prompts.prompt_painel(ctx)}] + messages,
            model=current_app.config['AI_MODEL_PAINEL'],
        )
    except gateway.GatewayError as e:
        body, status = gateway.error_response_body(e)
        return jsonify(body), status
    except Exception as e:
        current_app.logger.exception('painel-ia-chat error')
        return jsonify({'error': str(e)}), 500

    current_app.logger.info('Painel IA chat for user %s', current_user['id'])
    return Response(stream_with_context(gateway.iter_sse(upstream)), mimetype='text/event-stream')

@bp.route('/api/ia/extrair-equipamentos', methods=['POST'])
@jwt_required()
def api_extrair_equipamentos():
    data = request.json or {}
    file_urls = data.get('fileUrls')
    if not file_urls or not isinstance(file_urls, list):
        return jsonify({'error': 'Nenhum arquivo fornecido.'}), 400

    content_parts = [{'type': 'text', 'text': prompts.PEDIDO_EXTRACAO}]
    for url in file_urls[:MAX_ARQUIVOS]:
        data_url = gateway.download_as_data_url(url)
        if data_url:
            content_parts.append({'type': 'image_url', 'image_url': {'url': data_url}})
    if len(content_parts) == 1:
        return jsonify({'error': 'Não foi possível processar os arquivos.'}), 400

    try:
        content = gateway.chat_completion(
            [
                {'role': 'system', 'content': prompts.EXTRAIR_EQUIPAMENTOS},
                {'role': 'user', 'content': content_parts},
            ],
            response_format={'type': 'json_object'},
        )
    except gateway.GatewayError as e:
        body, status = gateway.error_response_body(
            e, limit_msg='Limite de requisições excedido. Tente novamente em alguns minutos.',
            default_msg='Erro ao extrair lista de equipamentos.')
        return jsonify(body), status

    try:
        parsed = json.loads(strip_code_fences(content or ''))
    except ValueError:
        current_app.logger.warning('Failed to parse equipment list: %s', (content or '')[:200])
        parsed = {'equipamentos': []}
    if not isinstance(parsed, dict) or not isinstance(parsed.get('equipamentos'), list):
        parsed = {'equipamentos': []}
    return jsonify(parsed)

@bp.route('/api/ia/resumo-projeto', methods=['POST'])
@jwt_required()
def api_resumo_projeto():
    data = request.json or {}
    sale_form = data.get('saleFormData')
    project_info = data.get('projectInfo')
    project_id = data.get('project_id')

    db = get_db()
    if project_id:
        project = db.execute('SELECT * FROM projects WHERE id = ?', (project_id,)).fetchone()
        if not project:
            return jsonify({'error': 'Projeto não encontrado'}), 404
        if sale_form is None:
            row = db.execute('SELECT * FROM sale_forms WHERE project_id = ?', (project_id,)).fetchone()
            sale_form = {k: row[k] for k in row.keys() if k not in ('id', 'project_id')} if row else None
        project_info = project_info or {
            'nome': project['cliente_condominio_nome'],
            'cidade': project['cliente_cidade'],
            'estado': project['cliente_estado'],
            'vendedor': project['vendedor_nome'],
        }
    if not sale_form:
        return jsonify({'error': 'Dados do formulário de venda são obrigatórios'}), 400

    try:
        summary = gateway.chat_completion([
            {'role': 'system', 'content': prompts.RESUMO_PROJETO},
            {'role': 'user', 'content': prompts.prompt_resumo_usuario(sale_form, project_info)},
        ])
    except gateway.GatewayError as e:
        body, status = gateway.error_response_body(
            e, limit_msg='Limite de requisições excedido. Tente novamente em alguns minutos.',
            credits_msg='Créditos insuficientes para geração de resumo.',
            default_msg='Erro ao gerar resumo')
        return jsonify(body), status

    summary = summary or 'Não foi possível gerar o resumo.'
    if project_id:
        db.execute('INSERT INTO project_ai_summaries (project_id, summary, generated_by_user_id) VALUES (?, ?, ?)',
                   (project_id, summary, current_user['id']))
        db.commit()
    return jsonify({'summary': summary})
