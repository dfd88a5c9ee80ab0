from faqrag.cli import run

run()
