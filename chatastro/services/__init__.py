"""
Services module - business logic and external collaborators

Core:
- Intent classification: intent_classifier.py
- Usage ledger: usage_ledger.py
- Astrology data cache: data_cache.py
- Prompt context: context_composer.py, response_policy.py
- Conversation engine: conversation_engine.py
- Payments: payment_service.py

Collaborators:
- Geocoding (OpenCage): geocoding_service.py
- Astrology data (Divine API): astrology_service.py
- Text generation (OpenAI via langchain): generation_service.py
- Payment gateway (Razorpay): payment_gateway.py
"""
