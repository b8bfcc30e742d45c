from eixo import create_app
from eixo.database import init_db

app = create_app()

# Initialize Database (Create tables if needed)
init_db(app)

if __name__ == '__main__':
    app.run(debug=app.config['LOG_LEVEL'].upper() == 'DEBUG', port=5000)
