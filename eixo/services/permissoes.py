from ..constants import MENU_KEYS


def resolve_access(role, role_perms, overrides, menu_key):
    """
    Override do usuário > permissão do perfil > padrão (admin completo, demais nenhum).
    role_perms / overrides: { menu_key: access_level }
    """
    if menu_key in overrides:
        return overrides[menu_key]
    if menu_key in role_perms:
        return role_perms[menu_key]
    return 'completo' if role == 'admin' else 'nenhum'

def load_access_map(db, user):
    role_perms = {
        r['menu_key']: r['access_level']
        for r in db.execute('SELECT menu_key, access_level FROM role_menu_permissions WHERE role = ?',
                            (user['role'],)).fetchall()
    }
    overrides = {
        r['menu_key']: r['access_level']
        for r in db.execute('SELECT menu_key, access_level FROM user_menu_overrides WHERE user_id = ?',
                            (user['id'],)).fetchall()
    }
    return {key: resolve_access(user['role'], role_perms, overrides, key) for key in MENU_KEYS}
