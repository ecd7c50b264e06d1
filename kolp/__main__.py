from kolp.main import run

run()
