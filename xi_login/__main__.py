from xi_login.main import run

run()
