import smtplib
from html import escape
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

from ..constants import STATUS_COLORS, STATUS_LABELS


class EmailError(Exception):
    pass


def send_email(to, subject, html, text='Atualização de projeto'):
    conf = current_app.config
    host, user, password = conf.get('SMTP_HOST'), conf.get('SMTP_USER'), conf.get('SMTP_PASSWORD')
    if not host or not user or not password:
        raise EmailError('SMTP credentials not configured (SMTP_HOST, SMTP_USER, SMTP_PASSWORD)')

    recipients = [to] if isinstance(to, str) else list(to)
    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = conf.get('SMTP_FROM') or user
    msg['To'] = ', '.join(recipients)
    msg.attach(MIMEText(text, 'plain', 'utf-8'))
    msg.attach(MIMEText(html, 'html', 'utf-8'))

    try:
        with smtplib.SMTP(host, conf.get('SMTP_PORT', 587), timeout=30) as s:
            s.starttls()
            s.login(user, password)
            s.sendmail(user, recipients, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error('Email send failed to %s: %s', recipients, e)
        raise EmailError(str(e)) from e
    current_app.logger.info('Email sent to %s: %s', recipients, subject)

def status_email(vendedor_nome, projeto_nome, projeto_id, new_status, changed_by, comment=None):
    """Monta (assunto, html) do aviso de mudança de status para o vendedor."""
    color = STATUS_COLORS.get(new_status, '#6B7280')
    label = STATUS_LABELS.get(new_status, new_status)
    is_pending_info = new_status == 'PENDENTE_INFO'
    link = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/projetos/{projeto_id}"

    pending_block = ''
    if is_pending_info and comment:
        pending_block = f"""
            <div style="background-color: #FEF3C7; border: 1px solid #F59E0B; border-radius: 8px; padding: 16px; margin-bottom: 24px;">
              <p style="color: #92400E; font-weight: bold; margin: 0 0 8px 0; font-size: 14px;">Informações Pendentes:</p>
              <p style="color: #78350F; margin: 0; font-size: 14px; white-space: pre-wrap;">{escape(comment)}</p>
            </div>
            <p style="color: #374151; font-size: 14px; margin-bottom: 24px;">
              Por favor, acesse o sistema para fornecer as informações solicitadas.
            </p>"""

    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; background-color: #f4f4f5; margin: 0; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background-color: white; border-radius: 8px; overflow: hidden;">
    <div style="background-color: #1e40af; padding: 24px; text-align: center;">
      <h1 style="color: white; margin: 0; font-size: 24px;">Atualização de Projeto</h1>
    </div>
    <div style="padding: 32px;">
      <p style="color: #374151; font-size: 16px;">Olá <strong>{escape(vendedor_nome or '')}</strong>,</p>
      <p style="color: #374151; font-size: 16px;">O projeto <strong>"{escape(projeto_nome or '')}"</strong> teve seu status alterado:</p>
      <div style="text-align: center; margin-bottom: 24px;">
        <div style="display: inline-block; background-color: {color}; color: white; padding: 12px 24px; border-radius: 8px; font-size: 18px; font-weight: bold;">{escape(label)}</div>
      </div>
      <p style="color: #6B7280; font-size: 14px; text-align: center;">Alterado por: {escape(changed_by or '')}</p>
      {pending_block}
      <div style="text-align: center; margin-top: 32px;">
        <a href="{escape(link)}" style="display: inline-block; background-color: #1e40af; color: white; padding: 12px 32px; border-radius: 6px; text-decoration: none; font-weight: bold;">Ver Projeto</a>
      </div>
    </div>
    <div style="background-color: #f9fafb; padding: 16px; text-align: center; border-top: 1px solid #e5e7eb;">
      <p style="color: #9CA3AF; font-size: 12px; margin: 0;">Este é um email automático do Sistema de Gestão de Projetos.</p>
    </div>
  </div>
</body>
</html>"""

    if is_pending_info:
        subject = f'Ação Necessária: Projeto "{projeto_nome}" requer informações'
    else:
        subject = f'Atualização: Projeto "{projeto_nome}" - {label}'
    return subject, html

def submitted_email(project):
    """Aviso de novo projeto enviado para a equipe de projetos."""
    link = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/projetos/{project['id']}"
    cidade = ' / '.join(p for p in (project.get('cliente_cidade'), project.get('cliente_estado')) if p)
    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; background-color: #f4f4f5; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background-color: white; border-radius: 8px; padding: 32px;">
    <h2 style="color: #1e40af;">Novo projeto enviado</h2>
    <p><strong>Projeto:</strong> #{escape(str(project.get('numero_projeto') or ''))} - {escape(project.get('cliente_condominio_nome') or '')}</p>
    <p><strong>Cidade:</strong> {escape(cidade)}</p>
    <p><strong>Vendedor:</strong> {escape(project.get('vendedor_nome') or '')}</p>
    <p><strong>Prazo de entrega:</strong> {escape(project.get('prazo_entrega_projeto') or 'Não informado')}</p>
    <p><a href="{escape(link)}">Ver Projeto</a></p>
  </div>
</body>
</html>"""
    subject = f"Novo Projeto: {project.get('cliente_condominio_nome')}"
    return subject, html
