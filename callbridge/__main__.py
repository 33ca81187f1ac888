from callbridge.app import run

run()
