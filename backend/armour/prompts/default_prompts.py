"""Prompt templates for contract analysis and the derived artifacts."""

CONTRACT_ANALYSIS_PROMPT = """You are an expert contract analyst specializing in influencer-brand collaboration agreements. Analyze the following document text.

DOCUMENT TEXT:
{contract_text}

First decide whether this document is a brand collaboration / influencer / creator services contract. Then return ONLY a valid JSON object with this exact structure:
{{
  "isContract": <true|false>,
  "documentType": "<brand_collaboration_contract|nda|invoice|other>",
  "detectedContractCategory": "<sponsored_content|ambassador|affiliate|ugc|licensing|other>",
  "brandDetected": <true|false>,
  "validationReason": "<only when isContract is false: why this is not a contract>",
  "protectionScore": <number 0-100, higher means the creator is better protected>,
  "negotiationPowerScore": <number 0-100>,
  "overallRisk": "<low|medium|high>",
  "issues": [
    {{
      "severity": "<high|medium|warning>",
      "category": "<category name>",
      "title": "<issue title>",
      "description": "<detailed description>",
      "clause": "<quoted clause or section reference>",
      "recommendation": "<actionable recommendation>"
    }}
  ],
  "verified": [
    {{
      "category": "<category name>",
      "title": "<positive aspect title>",
      "description": "<description>",
      "clause": "<quoted clause or section reference>"
    }}
  ],
  "keyTerms": {{
    "dealValue": "<amount>",
    "duration": "<duration>",
    "deliverables": "<deliverables>",
    "paymentSchedule": "<payment schedule>",
    "exclusivity": "<exclusivity period>"
  }},
  "recommendations": ["<recommendation 1>", "<recommendation 2>"]
}}

Use severity "warning" for important clauses that are MISSING from the contract.

Focus on:
- Payment terms and schedules
- Exclusivity clauses (flag if > 30 days)
- IP rights and content ownership
- Termination clauses (flag unfair penalties)
- Deliverables and timelines
- Any unfair terms or red flags

Return ONLY the JSON object, no markdown, no explanations."""


SAFE_CLAUSE_PROMPT = """You are a legal drafting assistant protecting a content creator.

Rewrite the following contract clause so that it is fair to the creator while remaining acceptable to a brand.

ORIGINAL CLAUSE:
{original_clause}

ISSUE CATEGORY: {issue_category}
WHY IT IS RISKY: {issue_context}

Return ONLY a JSON object:
{{
  "safeClause": "<the rewritten clause, ready to paste into the contract>",
  "explanation": "<one or two sentences on what changed and why it protects the creator>"
}}"""


SAFE_CONTRACT_PROMPT = """You are a legal drafting assistant protecting a content creator.

Rewrite the contract below into a creator-safe version. Keep every commercial term (parties, fees, deliverables, dates) unchanged, and fix the risky or missing clauses listed.

ISSUES TO FIX:
{issues}

ORIGINAL CONTRACT:
{contract_text}

Return ONLY the complete revised contract as clean HTML (use <h1>, <h2>, <p>, <ol>, <li>). No markdown, no commentary."""


NEGOTIATION_PROMPT = """You are a professional legal advisor helping a creator negotiate better contract terms with a brand.

TASK: Write a professional, polite, but firm legal negotiation message requesting changes for the following contract issues.

BRAND NAME: {brand_name}

{sections}REQUIREMENTS:
1. Professional and respectful tone - maintain positive working relationship
2. Group your response into two clear sections:
{section_requirements}
3. Clear explanation of each requested change
4. Reference specific clauses or sections when mentioned
5. Suggest fair alternatives that benefit both parties
6. Legally sound and business-friendly language
7. Suitable for email or formal communication
8. Keep it concise but comprehensive
9. Start with a friendly greeting
10. End with a call to action requesting a revised contract

TONE GUIDELINES:
- Cooperative, not confrontational
- Firm on legal protections, flexible on business terms
- Professional but approachable
- Focus on mutual benefit

Return ONLY the negotiation message text, no additional formatting, markdown, or explanations. Write it as if the creator is sending it directly to the brand."""
