# app/lib/openai_client.py
from openai import OpenAI
from app.config import config

# shared by structure and illustration calls; tests patch its methods in place
client = OpenAI(api_key=config.openai_api_key, max_retries=config.openai_max_retries)
