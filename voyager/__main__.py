from voyager.main import run

run()
