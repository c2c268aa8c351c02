from coffee_queue.main import run

run()
