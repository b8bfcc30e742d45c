"""Cliente do gateway de IA (endpoint compatível com chat-completions).

Erros HTTP do gateway viram ``GatewayError`` carregando o status original,
para que os handlers repassem 429 (limite) e 402 (créditos) ao chamador.
"""
import json
import base64

import requests
from flask import current_app

from ..database import get_setting


class GatewayError(Exception):
    def __init__(self, status, message, body=''):
        super().__init__(message)
        self.status = status
        self.message = message
        self.body = body


def get_config():
    # Prioritiza variáveis de ambiente (.env), depois a tabela settings
    conf = current_app.config
    url = conf.get('AI_GATEWAY_URL')
    key = conf.get('AI_API_KEY')
    if not key:
        key = get_setting('ai_api_key')
    if not key:
        raise GatewayError(500, 'AI_API_KEY is not configured')
    return {'url': url.rstrip('/'), 'key': key}

def _post(payload, stream=False):
    conf = get_config()
    headers = {
        'Authorization': f"Bearer {conf['key']}",
        'Content-Type': 'application/json',
    }
    try:
        r = requests.post(
            f"{conf['url']}/chat/completions",
            json=payload,
            headers=headers,
            stream=stream,
            timeout=current_app.config.get('AI_TIMEOUT', 120),
        )
    except requests.RequestException as e:
        current_app.logger.error('AI gateway unreachable: %s', e)
        raise GatewayError(500, 'AI gateway error') from e

    if r.status_code != 200:
        body = r.text
        current_app.logger.error('AI gateway error: %s %s', r.status_code, body[:500])
        r.close()
        raise GatewayError(r.status_code, 'AI gateway error', body)
    return r

def chat_completion(messages, model=None, response_format=None):
    """Chamada não-streaming; devolve o texto de ``choices[0].message.content``."""
    payload = {
        'model': model or current_app.config['AI_MODEL'],
        'messages': messages,
    }
    if response_format:
        payload['response_format'] = response_format
    r = _post(payload)
    data = r.json()
    choices = data.get('choices') or [{}]
    return (choices[0].get('message') or {}).get('content')

def chat_stream(messages, model=None):
    """Abre a chamada com ``stream: true`` e devolve a resposta do requests.

    O status é verificado antes de devolver, então 429/402 aparecem como
    ``GatewayError`` e não no meio do stream.
    """
    payload = {
        'model': model or current_app.config['AI_MODEL'],
        'messages': messages,
        'stream': True,
    }
    return _post(payload, stream=True)

def iter_sse(response, on_complete=None):
    """Repassa as linhas SSE do gateway e acumula o texto dos deltas.

    ``on_complete`` recebe o texto completo quando o stream termina.
    """
    full_content = []
    try:
        for line in response.iter_lines(decode_unicode=True):
            if line is None:
                continue
            yield line + '\n'
            if not line.startswith('data: '):
                continue
            json_str = line[6:].strip()
            if json_str == '[DONE]':
                continue
            try:
                parsed = json.loads(json_str)
            except ValueError:
                continue
            delta = ((parsed.get('choices') or [{}])[0].get('delta') or {})
            content = delta.get('content')
            if content:
                full_content.append(content)
    finally:
        response.close()
    if on_complete is not None:
        on_complete(''.join(full_content))

def download_as_data_url(url):
    """Baixa um arquivo e devolve como data URL base64, ou None se falhar."""
    try:
        r = requests.get(url, timeout=30)
    except requests.RequestException as e:
        current_app.logger.warning('Failed to download file %s: %s', url, e)
        return None
    if r.status_code != 200:
        current_app.logger.warning('Failed to download file %s: HTTP %s', url, r.status_code)
        return None
    content_type = r.headers.get('content-type', 'application/octet-stream')
    mime_type = content_type.split(';')[0].strip()
    encoded = base64.b64encode(r.content).decode('ascii')
    return f"data:{mime_type};base64,{encoded}"

def error_response_body(err, limit_msg='Limite de requisições excedido.',
                        credits_msg='Créditos insuficientes.', default_msg=None):
    """Mapeia um ``GatewayError`` para (json, status) no padrão da API."""
    if err.status == 429:
        return {'error': limit_msg}, 429
    if err.status == 402:
        return {'error': credits_msg}, 402
    return {'error': default_msg or err.message}, 500
