def notificar(db, title, message, type='info', project_id=None, for_user_id=None, for_role=None):
    db.execute('''
        INSERT INTO project_notifications (project_id, for_user_id, for_role, type, title, message)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', (project_id, for_user_id, for_role, type, title, message))

def notificar_manutencao(db, title, message, chamado_id=None, pendencia_id=None, for_role=None, for_user_id=None):
    db.execute('''
        INSERT INTO manutencao_notificacoes (chamado_id, pendencia_id, for_role, for_user_id, title, message)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', (chamado_id, pendencia_id, for_role, for_user_id, title, message))
