"""
Call Bridge - Twilio Media Streams to ElevenLabs Conversational AI relay

This application lets a phone caller hold a live spoken conversation with an AI agent.
It accepts the Twilio media stream opened for each call, opens a matching session with
ElevenLabs Conversational AI, and relays audio frames in both directions in the order
they arrive.

Architecture Overview:
- FastAPI server exposing the Twilio voice webhook and media stream WebSocket
- Telephony stream adapter translating media stream frames into call events
- One ElevenLabs client per call, created when the call's stream starts
- An orchestrator pairing both legs and tearing them down together

Key Components:
- bot: The ElevenLabs client and the stream orchestrator
- config: Constants, logging setup and environment settings
- handlers: Handlers for each Twilio media stream frame type
- models: Wire schemas for both protocols and the call registries
- events: The typed publish/subscribe surface shared by the components
- media_stream_manager: The telephony adapter owning every media stream connection

Getting Started:
1. Set up environment variables:
   - ELEVENLABS_API_KEY: Your ElevenLabs API key
   - ELEVENLABS_AGENT_ID: The conversational agent to talk to
   - BASE_URL: Public base URL of this server (e.g. https://example.ngrok-free.app)
   - PORT / HOST / LOG_LEVEL: Server options (defaults 8000, 0.0.0.0, INFO)

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the Twilio phone number's voice webhook to:
   - https://your-server/voice/webhook-stream (HTTP POST)
"""
