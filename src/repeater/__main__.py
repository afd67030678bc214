from repeater.cli import run

run()
