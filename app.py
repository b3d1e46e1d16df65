"""
OpenAPI Toolbox - Streamlit UI
Postman export, API catalog search and XML-driven request building
"""
import streamlit as st
import pandas as pd
import json
import requests

from generators.curl_generator import build_curl_command
from generators.postman_generator import generate_postman_collection
from loaders.dataset_loader import DOCS_DOWNLOAD_BASE, DOCS_PORTAL_BASE, CatalogDataset, DatasetAuthError
from mapper.operation_suggester import filter_operations, suggest_operation
from mapper.request_mapper import prepare_request_mapping
from utils.history import HistoryStore
from utils.logging_config import setup_logging
from utils.settings import load_settings
from utils.spec_loader import (
    SpecParseError,
    build_timestamp_token,
    fix_yaml,
    list_operations,
    load_spec_text,
    sanitize_filename,
    validate_json,
    validate_yaml,
)
from utils.validators import SpecValidator

settings = load_settings()
setup_logging(log_level=settings.log_level, log_file=settings.log_file)
history = HistoryStore(settings.history_file, limit=settings.history_limit)

# Page configuration
st.set_page_config(
    page_title="OpenAPI Toolbox",
    page_icon="🧰",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Custom CSS
st.markdown("""
<style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        color: #1f77b4;
        text-align: center;
        margin-bottom: 2rem;
    }
</style>
""", unsafe_allow_html=True)

# Initialize session state
if 'catalog' not in st.session_state:
    st.session_state.catalog = CatalogDataset(cache_ttl=settings.dataset_cache_ttl)
if 'mapping' not in st.session_state:
    st.session_state.mapping = None


def _show_spec_issues(spec):
    for issue in SpecValidator.validate_openapi(spec):
        if issue['severity'] == 'error':
            st.error(f"❌ {issue['message']}")
        else:
            st.warning(f"⚠️ {issue['message']}")


# Header
st.markdown('<div class="main-header">🧰 OpenAPI Toolbox</div>', unsafe_allow_html=True)
st.markdown("---")

# Sidebar - Configuration and history
with st.sidebar:
    st.header("⚙️ Configuration")
    st.text(f"Host variable: {settings.host_placeholder}")
    st.text(f"X-user: {settings.user}")
    st.text(f"X-process: {settings.process}")

    if settings.dataset_url:
        st.success("✅ Dataset API configured")
    else:
        st.info("ℹ️ No DATASET_URL - upload a CSV instead")

    st.markdown("---")
    st.subheader("🕘 History")
    saved = history.entries()
    if saved:
        for entry in saved:
            with st.expander(f"{entry['kind']}: {entry['name']}"):
                st.caption(entry['saved_at'])
                st.code(entry['content'][:2000])
    else:
        st.caption("Nothing saved yet")

tab_postman, tab_catalog, tab_builder = st.tabs(
    ["📮 OpenAPI → Postman", "🔎 Catalog search", "🛠️ Request builder"]
)

# Tab 1 - Postman collection
with tab_postman:
    spec_text = st.text_area("Paste an OpenAPI document (JSON or YAML)", height=300, key='postman_spec')

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("✅ Validate", use_container_width=True, disabled=not spec_text.strip()):
            check = validate_json(spec_text)
            if not check['valid']:
                check = validate_yaml(spec_text)
            if check['valid']:
                st.success("✅ Document parses")
            else:
                st.error(f"❌ {check['error']}")
    with col2:
        if st.button("🩹 Fix YAML", use_container_width=True, disabled=not spec_text.strip()):
            st.code(fix_yaml(spec_text), language='yaml')
    with col3:
        generate = st.button("🚀 Generate collection", type="primary", use_container_width=True,
                             disabled=not spec_text.strip())

    if generate:
        try:
            spec, _ = load_spec_text(spec_text)
            _show_spec_issues(spec)
            collection = generate_postman_collection(spec, settings)
            st.success(f"✅ {len(collection['item'])} requests generated")
            st.download_button(
                label="📥 Download collection",
                data=json.dumps(collection, indent=2, ensure_ascii=False),
                file_name=f"{sanitize_filename(collection['info']['name'])}_{build_timestamp_token()}.postman_collection.json",
                mime="application/json",
                use_container_width=True
            )
            with st.expander("🔍 Preview"):
                st.json(collection)
        except SpecParseError as e:
            st.error(f"❌ {str(e)}")

# Tab 2 - Catalog search
with tab_catalog:
    catalog = st.session_state.catalog

    col1, col2 = st.columns([2, 1])
    with col1:
        uploaded_file = st.file_uploader("Upload catalog CSV (';' separated)", type=['csv'])
        if uploaded_file:
            catalog.df = CatalogDataset.from_csv(uploaded_file.getvalue().decode('utf-8')).df
    with col2:
        if st.button("☁️ Load remote dataset", use_container_width=True, disabled=not settings.dataset_url):
            try:
                catalog.load_remote(settings.dataset_url, settings.dataset_token)
                st.success(f"✅ Loaded {len(catalog.df)} rows")
            except DatasetAuthError as e:
                st.error(f"🔒 {str(e)}")
            except (requests.RequestException, ValueError) as e:
                st.error(f"❌ Could not load dataset: {str(e)}")

    if catalog.df.empty:
        st.info("Load a catalog to search it")
    else:
        col1, col2, col3 = st.columns([2, 1, 1])
        with col1:
            term = st.text_input("Search", placeholder="path, target, service...")
        with col2:
            only_available = st.checkbox("Only available", value=True)
        with col3:
            group_by = st.selectbox("Group by", ['target', 'method', 'basePath'])

        results = catalog.merge_networks(catalog.search(term, only_available=only_available))
        st.metric("Matches", len(results))

        for key, rows in catalog.group(results, by=group_by):
            with st.expander(f"{key} ({len(rows)})"):
                st.dataframe(rows, use_container_width=True)
                portal_base = settings.docs_portal_url or DOCS_PORTAL_BASE
                download_base = settings.docs_download_url or DOCS_DOWNLOAD_BASE
                for _, row in rows.iterrows():
                    docs_url = CatalogDataset.docs_url(row, portal_base)
                    if docs_url:
                        download_url = CatalogDataset.download_spec_url(row, download_base)
                        st.markdown(
                            f"`{CatalogDataset.field(row, 'method')} {CatalogDataset.field(row, 'path')}` "
                            f"[📘 Docs]({docs_url}) · [⬇️ Spec]({download_url})"
                        )

# Tab 3 - Request builder
with tab_builder:
    col1, col2 = st.columns(2)
    with col1:
        builder_spec = st.text_area("OpenAPI document", height=250, key='builder_spec')
    with col2:
        xml_text = st.text_area("XML sample (SOAP envelope or log record)", height=250, key='builder_xml')

    operations = []
    spec = None
    if builder_spec.strip():
        try:
            spec, _ = load_spec_text(builder_spec)
            operations = list_operations(spec)
        except SpecParseError as e:
            st.error(f"❌ {str(e)}")

    suggestion = None
    catalog_df = st.session_state.catalog.df
    if operations and xml_text.strip() and not catalog_df.empty:
        suggestion = suggest_operation(xml_text, operations, catalog_df,
                                       min_confidence=settings.suggestion_min_confidence)

    if suggestion is not None and suggestion.best is not None:
        best = suggestion.best.operation
        message = f"🔎 Suggested: {best.method} {best.path} ({suggestion.confidence}%, {suggestion.status})"
        if suggestion.status == 'matched':
            st.success(message)
        else:
            st.warning(message)
        if suggestion.reasons:
            st.caption(" · ".join(suggestion.reasons))
        for candidate in suggestion.alternatives:
            st.caption(f"Alternative: {candidate.operation.method} {candidate.operation.path} ({candidate.confidence}%)")
        if st.toggle("Only operations consistent with the suggestion", value=True):
            operations = filter_operations(operations, suggestion) or operations
    elif suggestion is not None:
        st.info("No catalog operation matches this XML")

    if operations:
        default_index = 0
        if suggestion is not None and suggestion.best is not None:
            default_index = next(
                (i for i, op in enumerate(operations) if op.operation_id == suggestion.best.operation.operation_id
                 and op.path == suggestion.best.operation.path), 0
            )
        selected = st.selectbox(
            "Operation",
            operations,
            index=default_index,
            format_func=lambda op: f"{op.method} {op.path} ({op.operation_id})"
        )

        if st.button("🗺️ Prepare mapping", type="primary", disabled=not xml_text.strip()):
            st.session_state.mapping = (selected, prepare_request_mapping(spec, selected, xml_text, settings))

        if st.session_state.mapping:
            operation, mapping = st.session_state.mapping

            for diagnostic in mapping.diagnostics:
                if diagnostic.severity == 'error':
                    st.error(f"❌ {diagnostic.path or '<root>'}: {diagnostic.message}")
                else:
                    st.warning(f"⚠️ {diagnostic.path or '<root>'}: {diagnostic.message}")

            st.subheader("Parameters")
            params_df = pd.DataFrame(
                [{'in': 'path', **p.model_dump()} for p in mapping.path_params] +
                [{'in': 'query', **p.model_dump()} for p in mapping.query_params]
            )
            if not params_df.empty:
                edited = st.data_editor(params_df, use_container_width=True, key='params_editor')
                for index, param in enumerate(mapping.path_params + mapping.query_params):
                    param.value = str(edited.iloc[index]['value'])
                    param.enabled = bool(edited.iloc[index]['enabled'])

            st.subheader("Headers")
            headers_df = pd.DataFrame([h.model_dump() for h in mapping.headers])
            edited_headers = st.data_editor(
                headers_df,
                use_container_width=True,
                disabled=['source', 'removable', 'locked'],
                key='headers_editor'
            )
            for index, header in enumerate(mapping.headers):
                header.value = str(edited_headers.iloc[index]['value'])
                header.enabled = bool(edited_headers.iloc[index]['enabled']) or bool(header.locked)

            prune_body = st.toggle("Only fields with values", value=False)
            if mapping.body_full is not None:
                st.subheader("Body")
                st.code(mapping.body(pruned=prune_body), language='json')

            curl_text = build_curl_command(operation, mapping, prune_body=prune_body,
                                           host_variable=settings.host_variable)
            st.subheader("cURL")
            st.code(curl_text, language='bash')

            col1, col2 = st.columns(2)
            with col1:
                if st.button("💾 Save XML to history", use_container_width=True,
                             disabled=history.is_saved(xml_text)):
                    history.upsert(operation.operation_id, 'xml', xml_text)
                    st.success("✅ Saved")
            with col2:
                if st.button("💾 Save spec to history", use_container_width=True,
                             disabled=history.is_saved(builder_spec)):
                    title = (spec.get('info') or {}).get('title') or 'OpenAPI'
                    history.upsert(title, 'spec', builder_spec)
                    st.success("✅ Saved")
    elif spec is not None:
        st.warning("⚠️ The document declares no operations")

# Footer
st.markdown("---")
st.markdown(
    """
    <div style='text-align: center; color: gray; padding: 1rem;'>
        OpenAPI Toolbox | Postman · Catalog · Request builder
    </div>
    """,
    unsafe_allow_html=True
)
